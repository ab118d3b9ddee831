from rich.console import Console

console = Console()


def banner(version: str):
    console.print(
        r"""
[bold cyan]
 ┌┬┐┌─┐┌┬┐┌─┐┬    ┌─┐┌─┐┬  ┌─┐┌─┐┌┬┐┌─┐┬─┐
 ││││ │ ││├┤ │    └─┐├┤ │  ├┤ │   │ │ │├┬┘
 ┴ ┴└─┘─┴┘└─┘┴─┘  └─┘└─┘┴─┘└─┘└─┘ ┴ └─┘┴└─
[/bold cyan]"""
    )
    console.print(f"[bright_white]v{version}[/bright_white]")
    console.print()
    console.print('  model-selector rank "fast, cheap, functions"')
    console.print('  model-selector parse "cost <= 5, speed >= 7, !local"')
    console.print('  model-selector classify "Rate limit exceeded"')
    console.print()
