"""
Command line entry point for the math grading pipeline.

Usage:
    mathgrader grade homework.jpg
    mathgrader grade homework.jpg --answer-key key.json --json
    mathgrader classify "2x + 5 = 15" "3/4 + 1/2"
    mathgrader compare 0.5 1/2
    mathgrader health
    mathgrader providers
"""

import argparse
import asyncio
import base64
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from mathgrader.ai.provider_factory import get_available_providers
from mathgrader.config.logging_config import setup_from_settings
from mathgrader.config.settings import get_settings
from mathgrader.core.models import AnswerKey, GradingOptions, GradingRequest, GradingResult, ImageInput
from mathgrader.grading.classifier import classify_with_reason
from mathgrader.grading.comparator import compare_answers
from mathgrader.grading.service import EnhancedGradingService


def load_image(path: Path) -> ImageInput:
    """Read an image file as a base64 ImageInput."""
    mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return ImageInput(type="base64", data=data, mime_type=mime_type)


def load_answer_key(path: Path) -> AnswerKey:
    return AnswerKey.model_validate_json(path.read_text(encoding="utf-8"))


def print_grading_result(console: Console, result: GradingResult) -> None:
    if not result.success:
        console.print(f"[red]Grading failed: {result.error}[/red]")
        return

    name = result.detected_student_name or "unknown student"
    console.print(f"\n[bold cyan]{result.submission_id}[/bold cyan] [yellow]{name}[/yellow]")

    table = Table(show_header=True, header_style="bold dim")
    table.add_column("Q", justify="right")
    table.add_column("Problem")
    table.add_column("Student")
    table.add_column("Correct")
    table.add_column("Points", justify="right")
    table.add_column("Verification")

    for q in result.questions:
        icon = "[green]✓[/green]" if q.is_correct else "[red]✗[/red]"
        method = q.verification_method.value
        if q.verification_conflict:
            method = f"[yellow]{method} (conflict)[/yellow]"
        table.add_row(
            f"{icon} {q.question_number}",
            q.problem_text,
            q.student_answer or "-",
            q.correct_answer or "-",
            f"{q.points_awarded:g}/{q.points_possible:g}",
            method,
        )
    console.print(table)

    color = "green" if result.percentage >= 70 else "yellow" if result.percentage >= 50 else "red"
    console.print(
        f"[bold {color}]Total: {result.score:g}/{result.max_score:g} ({result.percentage}%)[/bold {color}] "
        f"[dim]{result.provider} / {result.model}, OCR: {result.ocr_provider.value}, "
        f"cost ${result.cost_breakdown.total:.4f}[/dim]"
    )
    if result.needs_review:
        console.print(f"[yellow]⚠ Needs review: {result.review_reason}[/yellow]")


async def command_grade(args) -> int:
    """Grade one homework image."""
    console = Console()
    image_path = Path(args.image)
    if not image_path.is_file():
        console.print(f"[red]Image not found: {image_path}[/red]")
        return 1

    answer_key = None
    if args.answer_key:
        try:
            answer_key = load_answer_key(Path(args.answer_key))
        except (OSError, ValidationError) as e:
            console.print(f"[red]Invalid answer key: {e}[/red]")
            return 1

    options = GradingOptions(
        generate_feedback=args.feedback,
        enable_verification=False if args.no_verify else None,
        use_ocr=False if args.no_ocr else None,
        preferred_provider=args.provider,
    )
    request = GradingRequest(
        submission_id=args.submission_id or image_path.stem,
        image=load_image(image_path),
        answer_key=answer_key,
        options=options,
    )

    service = EnhancedGradingService.from_settings()
    result = await service.grade_submission_enhanced(request)

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print_grading_result(console, result)
    return 0 if result.success else 1


def command_classify(args) -> int:
    console = Console()
    table = Table(title="Difficulty")
    table.add_column("Problem", style="cyan")
    table.add_column("Difficulty", style="yellow")
    table.add_column("Reason")

    for text in args.texts:
        classification = classify_with_reason(text)
        table.add_row(text, classification.difficulty.value, classification.reason)

    console.print(table)
    return 0


def command_compare(args) -> int:
    console = Console()
    comparison = compare_answers(args.a, args.b, args.tolerance)
    if comparison.matched:
        console.print(f"[green]Equivalent[/green] [dim]({comparison.method.value})[/dim]")
    else:
        console.print(
            f"[red]Different[/red] [dim]('{comparison.normalized_a}' vs '{comparison.normalized_b}')[/dim]"
        )
    return 0 if comparison.matched else 1


async def command_health(args) -> int:
    console = Console()
    service = EnhancedGradingService.from_settings()
    health = await service.health_check()

    table = Table(title="Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")

    def status(ok: bool) -> str:
        return "[green]ok[/green]" if ok else "[red]unavailable[/red]"

    for name, ok in health["providers"].items():
        table.add_row(name, status(ok))
    table.add_row("mathpix", status(health["mathpix"]))
    table.add_row("wolfram", status(health["wolfram"]))

    console.print(table)
    return 0 if any(health["providers"].values()) else 1


def command_providers(args) -> int:
    console = Console()
    settings = get_settings()
    configured = set(get_available_providers(settings))

    table = Table(title="Chat providers (fallback order)")
    table.add_column("Provider", style="cyan")
    table.add_column("Configured")

    for name in settings.fallback_providers:
        table.add_row(name, "[green]yes[/green]" if name in configured else "[dim]no[/dim]")

    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mathgrader",
        description="Math homework grading with OCR and answer verification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s grade homework.jpg
  %(prog)s grade homework.jpg --answer-key key.json --json
  %(prog)s classify "2x + 5 = 15"
  %(prog)s compare 0.75 3/4
  %(prog)s health

Configuration is read from MATHGRADER_* environment variables or .env.
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    grade_parser = subparsers.add_parser("grade", help="Grade a homework image")
    grade_parser.add_argument("image", help="Image file (jpg, png, ...)")
    grade_parser.add_argument("--answer-key", help="Answer key JSON file")
    grade_parser.add_argument("--submission-id", help="Submission id (default: file name)")
    grade_parser.add_argument("--provider", help="Chat provider to try first")
    grade_parser.add_argument("--no-verify", action="store_true", help="Skip answer verification")
    grade_parser.add_argument("--no-ocr", action="store_true", help="Skip Mathpix OCR")
    grade_parser.add_argument("--feedback", action="store_true", help="Generate per-question feedback")
    grade_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    classify_parser = subparsers.add_parser("classify", help="Classify problem difficulty")
    classify_parser.add_argument("texts", nargs="+", help="Problem texts")

    compare_parser = subparsers.add_parser("compare", help="Compare two answers")
    compare_parser.add_argument("a", help="First answer")
    compare_parser.add_argument("b", help="Second answer")
    compare_parser.add_argument("--tolerance", type=float, help="Numeric tolerance")

    subparsers.add_parser("health", help="Check providers")
    subparsers.add_parser("providers", help="List configured chat providers")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # stdout is reserved for command output
    setup_from_settings(get_settings(), stream=sys.stderr)

    if args.command == "grade":
        return asyncio.run(command_grade(args))
    elif args.command == "classify":
        return command_classify(args)
    elif args.command == "compare":
        return command_compare(args)
    elif args.command == "health":
        return asyncio.run(command_health(args))
    elif args.command == "providers":
        return command_providers(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
