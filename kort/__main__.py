"""Run the kort command line tool with `python -m kort`."""

from .tool.kort import main

if __name__ == "__main__":
    main()
