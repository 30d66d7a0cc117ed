"""chunksync CLI.

Command-line interface for configuring and running chunk sync.

Usage:
    chunksync init <url>          Configure the remote
    chunksync test                Check the connection
    chunksync sync                Run one sync cycle
    chunksync status              Show the last sync outcome
    chunksync chunks list         List local chunks
    chunksync resolve <id> -k     Resolve a conflict
"""

from chunksync.cli.main import app, main

__all__ = ["app", "main"]
