from collections.abc import AsyncIterator

from kruntime._core.reactor import stores, watching


async def reflector(
        writer: stores.Writer,
        stream: AsyncIterator[watching.WatchEvent],
) -> AsyncIterator[watching.WatchEvent]:
    """
    Pass the watch-events through, applying them to the store on the way.

    Every event is applied strictly before it is yielded: so, whoever reacts
    to the event, sees it already in the store. The order is preserved.
    """
    async for event in stream:
        writer.apply_event(event)
        yield event
