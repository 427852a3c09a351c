"""Entry point for running the CLI as a module.

Usage:
    python -m pitchscan detect match.mp4 --mode frame
    python -m pitchscan performance match.mp4 --player-name "Jane Doe"

Run the API server with:
    uvicorn pitchscan.main:app
"""

from pitchscan.cli import cli

if __name__ == "__main__":
    cli()
