"""Entry point for running EmoteStream as a module."""

from .cli import run

if __name__ == "__main__":
    run()
