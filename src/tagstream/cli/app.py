import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from tagstream.cli.parse import parse
from tagstream.cli.run import run
from tagstream.cli.serve import serve_app

app = typer.Typer(
    name="tagstream",
    help="tagstream CLI: decode streamed <file>/<terminal> markup and execute it.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def configure(
    log_level: Annotated[str | None, typer.Option(help="Log level (defaults to TAGSTREAM_LOG_LEVEL or INFO).")] = None,
) -> None:
    from tagstream.config import Settings

    level = (log_level or Settings.from_env().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


app.command("parse")(parse)
app.command("run")(run)
app.add_typer(serve_app, name="serve")


def main() -> None:
    app()
