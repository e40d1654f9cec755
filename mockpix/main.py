"""
mockpix — Mock JSON records with AI-generated images

Usage:
  python -m mockpix generate data/sample.json --output outputs/mock.json --count 20
  python -m mockpix generate data/sample.json --output outputs/mock.json --no-images
  python -m mockpix process outputs/mock.json --output outputs/mock.final.json
  python -m mockpix analyze outputs/mock.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from .analyzer import create_processing_plan, optimization_stats
from .config import PipelineConfig, load_config
from .describer import DescriptionGenerator
from .errors import MockpixError
from .extractor import extract_image_urls, extraction_stats
from .models import PostProcessingResult
from .orchestrator import PostProcessingOrchestrator
from .records import MockGenerationRequest, MockRecordGenerator, analyze_json_structure

console = Console()
logger = logging.getLogger("mockpix")


# ── CLI ───────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mockpix",
        description="mockpix — mock JSON records with AI-generated images",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate mock records from a sample JSON file")
    gen.add_argument("input", help="Sample JSON file containing at least one array")
    gen.add_argument("--output", required=True, help="Where to write the generated array")
    gen.add_argument("--count", type=int, default=10, help="Number of records (default: 10)")
    gen.add_argument("--array-path", default=None, help="Dotted path of the sample array (default: largest)")
    gen.add_argument("--preferences", default=None, help="Extra instructions for the text model")
    gen.add_argument("--no-images", action="store_true", help="Keep picsum placeholders")
    _add_processing_args(gen)

    proc = sub.add_parser("process", help="Replace picsum placeholders in an existing JSON file")
    proc.add_argument("input", help="JSON file with picsum placeholder URLs")
    proc.add_argument("--output", default=None, help="Output file (default: overwrite input)")
    _add_processing_args(proc)

    ana = sub.add_parser("analyze", help="Show arrays, placeholders and the generation plan (offline)")
    ana.add_argument("input", help="JSON file to analyze")

    return parser


def _add_processing_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--report", default=None, help="Write a JSON report of the run")
    parser.add_argument("--no-optimization", action="store_true", help="One generation per placeholder")
    parser.add_argument(
        "--grouping", choices=["greedy", "connected"], default="greedy",
        help="greedy = first-match groups; connected = transitive similarity",
    )
    parser.add_argument("--save-intermediate", action="store_true", help="Dump each stage as JSON")
    parser.add_argument("--validate-urls", action="store_true", help="HEAD-check every new URL")
    parser.add_argument(
        "--preserve-originals", action="store_true",
        help="Count unresolved placeholders as failures instead of keeping them silently",
    )


def apply_processing_args(config: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    config.enable_optimization = not args.no_optimization
    config.save_intermediate_results = args.save_intermediate
    config.replacement.validate_urls = args.validate_urls
    config.replacement.preserve_original_on_failure = args.preserve_originals
    return config


# ── Output helpers ────────────────────────────────────────────────────────────

def print_result(result: PostProcessingResult) -> None:
    table = Table(title="Image post-processing", show_header=False)
    table.add_column("metric", style="dim")
    table.add_column("value", justify="right")
    table.add_row("Placeholders found", str(result.original_image_count))
    table.add_row("Placeholders replaced", str(result.processed_image_count))
    table.add_row("Images generated", str(result.generated_image_count))
    table.add_row("Optimization savings", f"{result.optimization_savings:.1f}%")
    table.add_row("Time", f"{result.processing_time_ms / 1000:.1f}s")
    console.print(table)

    for warning in result.warnings[:10]:
        console.print(f"  [yellow]⚠ {warning}[/yellow]")
    if len(result.warnings) > 10:
        console.print(f"  [yellow]… and {len(result.warnings) - 10} more warnings[/yellow]")
    for error in result.errors:
        console.print(f"  [red]✗ {error}[/red]")


def run_processing(config: PipelineConfig, args: argparse.Namespace, input_path: Path,
                   output_path: Path) -> PostProcessingResult:
    orchestrator = PostProcessingOrchestrator(config, grouping=args.grouping)
    report = Path(args.report) if args.report else None
    result = asyncio.run(orchestrator.process_file(input_path, output_path, report))
    print_result(result)
    return result


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_generate(args: argparse.Namespace, config: PipelineConfig) -> int:
    output = Path(args.output)
    console.print("\n[bold]Step 1/2 — Generating mock records (Gemini)[/bold]")
    t0 = time.time()
    generator = MockRecordGenerator(config)
    gen_result = generator.generate(MockGenerationRequest(
        input_file=Path(args.input),
        output_file=output,
        count=args.count,
        array_path=args.array_path,
        preferences=args.preferences,
    ))
    if not gen_result.success:
        console.print(f"  [red]✗ {gen_result.error}[/red]")
        return 1
    console.print(
        f"  [green]✓ {gen_result.generated_count} record(s) → {output} "
        f"in {time.time() - t0:.1f}s[/green]"
    )

    if args.no_images:
        console.print("\n  [dim]Image generation skipped (--no-images)[/dim]")
        return 0

    console.print("\n[bold]Step 2/2 — Replacing placeholder images[/bold]")
    result = run_processing(config, args, output, output)
    return 0 if result.success else 1


def cmd_process(args: argparse.Namespace, config: PipelineConfig) -> int:
    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else input_path
    result = run_processing(config, args, input_path, output_path)
    if result.success:
        console.print(f"  [green]✓ Saved {output_path}[/green]")
    return 0 if result.success else 1


def cmd_analyze(args: argparse.Namespace, config: PipelineConfig) -> int:
    data = json.loads(Path(args.input).read_text(encoding="utf-8"))

    arrays = Table(title="Arrays")
    arrays.add_column("path")
    arrays.add_column("items", justify="right")
    for pattern in analyze_json_structure(data):
        arrays.add_row(pattern.array_path, str(pattern.item_count))
    console.print(arrays)

    extraction = extract_image_urls(data)
    stats = extraction_stats(extraction)
    console.print(f"\n{stats['summary']}")
    if extraction.total_found == 0:
        return 0

    dims = Table(title="Dimensions")
    dims.add_column("size")
    dims.add_column("count", justify="right")
    for key, count in stats["dimension_distribution"].items():
        dims.add_row(key, str(count))
    console.print(dims)

    descriptions = DescriptionGenerator(config.description).describe_all(extraction.occurrences)
    plan = create_processing_plan(extraction.occurrences, descriptions)
    plan_stats = optimization_stats(plan)
    console.print(
        Panel(
            f"{plan_stats['summary']}\n"
            f"Estimated savings: [bold]{plan.estimated_savings:.1f}%[/bold]  |  "
            f"Efficiency: [bold]{plan_stats['efficiency_score']}%[/bold]",
            title="[bold]Generation plan[/bold]",
            border_style="cyan",
        )
    )
    return 0


COMMANDS = {
    "generate": cmd_generate,
    "process": cmd_process,
    "analyze": cmd_analyze,
}


def main(argv: Optional[list] = None) -> None:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )

    console.print(Rule(f"[bold magenta]mockpix {args.command}[/bold magenta]"))
    try:
        config = load_config()
        if args.command != "analyze":
            apply_processing_args(config, args)
        code = COMMANDS[args.command](args, config)
    except MockpixError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        code = 1
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
