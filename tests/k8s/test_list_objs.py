import logging

import aiohttp.web
import pytest

from kruntime._cogs.clients.errors import APIError
from kruntime._cogs.clients.fetching import build_params, list_objs

logger = logging.getLogger(__name__)


def test_params_without_selectors():
    assert build_params() == {}


def test_params_with_selectors():
    params = build_params(labels={'app': 'x', 'tier': None}, fields='metadata.name=y')
    assert params == {'labelSelector': 'app=x,tier', 'fieldSelector': 'metadata.name=y'}


async def test_listing_works(
        resp_mocker, aresponses, hostname, settings, resource, namespace):

    result = {'kind': 'KruntimeExampleList', 'apiVersion': 'kruntime.dev/v1',
              'metadata': {'resourceVersion': '123'},
              'items': [{}, {'kind': 'Other', 'apiVersion': 'other/v1'}]}
    list_mock = resp_mocker(return_value=aiohttp.web.json_response(result))
    list_url = resource.get_url(namespace=namespace)
    aresponses.add(hostname, list_url, 'get', list_mock)

    items, resource_version = await list_objs(
        settings=settings,
        resource=resource,
        namespace=namespace,
        logger=logger,
    )
    assert items == [
        {'kind': 'KruntimeExample', 'apiVersion': 'kruntime.dev/v1'},
        {'kind': 'Other', 'apiVersion': 'other/v1'},
    ]
    assert resource_version == '123'
    assert list_mock.queries == [{}]


async def test_listing_with_selectors(
        resp_mocker, aresponses, hostname, settings, resource, namespace):

    result = {'metadata': {'resourceVersion': '123'}, 'items': []}
    list_mock = resp_mocker(return_value=aiohttp.web.json_response(result))
    list_url = resource.get_url(namespace=namespace)
    aresponses.add(hostname, list_url, 'get', list_mock)

    items, resource_version = await list_objs(
        settings=settings,
        resource=resource,
        namespace=namespace,
        labels={'app': 'x'},
        fields={'metadata.name': 'y'},
        logger=logger,
    )
    assert items == []
    assert list_mock.queries == [{'labelSelector': 'app=x', 'fieldSelector': 'metadata.name=y'}]


@pytest.mark.parametrize('status', [400, 401, 403, 500, 666])
async def test_raises_api_errors(
        resp_mocker, aresponses, hostname, settings, status, resource, namespace):

    list_mock = resp_mocker(return_value=aresponses.Response(status=status))
    list_url = resource.get_url(namespace=namespace)
    aresponses.add(hostname, list_url, 'get', list_mock)

    with pytest.raises(APIError) as e:
        await list_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            logger=logger,
        )
    assert e.value.status == status
