"""Query tester: parse, rank and classify from the terminal."""
import argparse

from rich.console import Console
from rich.table import Table

from .config import load_config
from .errors import ModelSelectorError, classify
from .generate import select_models
from .query import expand_aliases, parse_query


def fmt(num: float) -> str:
    return f"{num:.3f}"


def render_conditions(query: str, aliases: dict[str, str]) -> Table:
    parsed = parse_query(query, aliases)
    table = Table(title=expand_aliases(query, aliases))
    table.add_column("#", justify="right")
    table.add_column("attribute")
    table.add_column("op")
    table.add_column("value")
    table.add_column("negated")
    table.add_column("weight", justify="right")
    for i, cond in enumerate(parsed.conditions):
        table.add_row(
            str(i),
            cond.attribute,
            cond.operator,
            repr(cond.value),
            "yes" if cond.negated else "",
            str(cond.weight),
        )
    return table


def render_ranking(query: str, ranked) -> Table:
    table = Table(title=f"Ranking for: {query}")
    table.add_column("rank", justify="right")
    table.add_column("model")
    table.add_column("provider")
    table.add_column("score", justify="right")
    table.add_column("points", justify="right")
    table.add_column("exact")
    table.add_column("matched")
    table.add_column("missing")
    for i, r in enumerate(ranked, start=1):
        table.add_row(
            str(i),
            r.name,
            r.provider_id,
            fmt(r.score),
            f"{r.match.score}/{r.match.max_score}",
            "yes" if r.exact_match else "",
            ", ".join(r.match.matched_attributes),
            ", ".join(r.match.missing_attributes),
        )
    return table


class _CliError(Exception):
    pass


def render_classification(message: str, status: int | None = None) -> Table:
    error = _CliError(message)
    error.status = status
    c = classify(error)
    table = Table(title="Classification")
    table.add_column("category")
    table.add_column("retry")
    table.add_column("fallback")
    table.add_row(c.category.value, str(c.should_retry), str(c.should_fallback))
    return table


def _parse_alias(raw: str) -> tuple[str, str]:
    name, sep, fragment = raw.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"alias must look like name=fragment, got '{raw}'")
    return name.strip(), fragment.strip()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="model-selector",
        description="Test model selection queries against your configuration.",
    )
    sub = parser.add_subparsers(dest="command")

    p_parse = sub.add_parser("parse", help="show how a query is parsed")
    p_parse.add_argument("query")
    p_parse.add_argument(
        "--alias", action="append", type=_parse_alias, default=[], help="name=fragment"
    )
    p_parse.add_argument("--config", default=None, help="use aliases from this config")

    p_rank = sub.add_parser("rank", help="rank configured models for a query")
    p_rank.add_argument("query")
    p_rank.add_argument("--config", default=None)
    p_rank.add_argument("--count", type=int, default=None)

    p_cls = sub.add_parser("classify", help="classify an error message")
    p_cls.add_argument("message")
    p_cls.add_argument("--status", type=int, default=None)

    return parser.parse_args(argv)


def main(argv=None, console: Console | None = None) -> int:
    args = parse_args(argv)
    console = console or Console()

    if args.command is None:
        from . import __version__
        from .banner import banner

        banner(__version__)
        return 0

    try:
        if args.command == "parse":
            aliases = dict(load_config(args.config).aliases) if args.config else {}
            aliases.update(dict(args.alias))
            console.print(render_conditions(args.query, aliases))
        elif args.command == "rank":
            ranked = select_models(args.query, count=args.count, config_path=args.config)
            console.print(render_ranking(args.query, ranked))
        elif args.command == "classify":
            console.print(render_classification(args.message, args.status))
    except ModelSelectorError as e:
        console.print(f"[bold red]error:[/bold red] {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
