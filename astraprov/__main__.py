"""
CLI entry point, when used as a module: `python -m astraprov`.

Useful for debugging in the IDEs (use the start-mode "Module", module "astraprov").
"""
from astraprov import cli

if __name__ == '__main__':
    cli.main()
