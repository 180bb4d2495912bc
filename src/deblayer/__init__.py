import logging

import httpx
import typer
from rich.logging import RichHandler

logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            rich_tracebacks=True,
            tracebacks_suppress=[httpx, typer],
        )
    ],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
