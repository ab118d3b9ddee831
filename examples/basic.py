"""Rank the sample configuration for a few queries and print the tables."""
from pathlib import Path

from rich.console import Console

import model_selector as ms
from model_selector.cli import render_conditions, render_ranking

CONFIG_PATH = Path(__file__).with_name("model-selector.toml")

QUERIES = [
    "fast, cheap",
    "smart, vision, !cheap",
    "agentic:10, context >= 150000",
    "local",
]


def rank_all(config: ms.Config | None = None) -> dict[str, list[ms.RankedCandidate]]:
    config = config or ms.load_config(CONFIG_PATH)
    return {q: ms.select_models(q, config=config) for q in QUERIES}


if __name__ == "__main__":
    console = Console()
    config = ms.load_config(CONFIG_PATH)
    for query, ranked in rank_all(config).items():
        console.print(render_conditions(query, config.aliases))
        console.print(render_ranking(query, ranked))
