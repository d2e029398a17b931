"""
CLI entry point, when used as a module: `python -m kruntime`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kruntime").
"""
from kruntime import cli

if __name__ == '__main__':
    cli.main()
