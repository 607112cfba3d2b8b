from dockyard.cli.main import DockyardCLI, main

__all__ = ["DockyardCLI", "main"]
