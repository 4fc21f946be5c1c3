# src/tagsync/__main__.py
from .cli import run_cli

if __name__ == "__main__":
    run_cli()
