import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from rich import print as rprint

from .aliases import AliasService
from .executor import PlanExecutor
from .generator import PlanGenerator
from .redaction import context_identifiers, substitute_identifiers
from .sections import DEFAULT_REGISTRY
from .settings import load_settings
from .store import JsonFileStore
from .surface import ChartDocument, ChartDocumentSurface


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity level."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_chart(path: Optional[str]) -> Optional[ChartDocument]:
    if not path:
        return None
    with open(path) as f:
        return ChartDocument.model_validate(json.load(f))


def save_results(
    results: Dict[str, Any],
    output_format: Literal["json", "markdown"],
    output_file: str
) -> None:
    """Save results to a file in the specified format."""
    logger = logging.getLogger(__name__)
    output_path = Path(output_file)

    logger.info(f"Saving results to {output_path} in {output_format} format")

    if output_format == "json":
        with open(output_path, "w") as f:
            json.dump(results, f, indent=2, default=str)
    elif output_format == "markdown":
        plan = results["plan"]
        with open(output_path, "w") as f:
            f.write("# Chart Plan Report\n\n")
            f.write(f"## Summary\n{plan['summary'] or 'N/A'}\n\n")
            f.write(f"- Provider: `{plan['meta']['provider']}`\n")
            f.write(f"- Patient alias: `{plan['meta']['patient_alias'] or 'UNKNOWN'}`\n\n")

            if plan["warnings"]:
                f.write("## Warnings\n")
                for warning in plan["warnings"]:
                    f.write(f"- {warning}\n")
                f.write("\n")

            f.write("## Sections\n")
            for item in plan["items"]:
                label = DEFAULT_REGISTRY.label(item["target_section"])
                f.write(f"### {label} ({item['status']})\n")
                if item["reasoning"]:
                    f.write(f"{item['reasoning']}\n\n")
                for command in item["commands"]:
                    f.write(f"- `{command['type']}` {command['description']}\n")
                for note in item["manual_notes"]:
                    f.write(f"- Manual: {note['description']} ({note['reason']})\n")
                f.write("\n")

            report = results.get("execution")
            if report:
                f.write("## Execution\n")
                for entry in report["executed"]:
                    f.write(f"- Executed `{entry['command_type']}` in {entry['section_id']}\n")
                for entry in report["skipped"]:
                    f.write(f"- Skipped `{entry['command_type']}` in {entry['section_id']}: {entry['reason']}\n")

    logger.info(f"Results saved to {output_path}")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Turn an encounter narrative into chart edit commands.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Encounter narrative.")
    source.add_argument("--text-file", help="Path to a file holding the encounter narrative.")
    parser.add_argument("--patient-context", help="Patient context string, e.g. 'Jane Doe|1980-01-01'.")
    parser.add_argument("--model", help="LLM model to plan with (default from settings)")
    parser.add_argument("--heuristic", action="store_true", help="Skip the AI provider and use heuristic extraction")
    parser.add_argument("--execute", action="store_true", help="Apply the plan to a chart document")
    parser.add_argument("--chart", help="JSON chart document to execute against (default: built-in chart)")
    parser.add_argument("--store", help="Path of the local alias/settings store")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--output-format",
        choices=["json", "markdown"],
        help="Format for saving results (json or markdown)"
    )
    parser.add_argument(
        "--save-results",
        help="Path to save the results file"
    )
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    narrative = args.text if args.text is not None else Path(args.text_file).read_text()
    logger.info("Starting narrative planning")
    logger.debug(f"Input text length: {len(narrative)} characters")

    settings = load_settings(model=args.model)
    store = JsonFileStore(args.store or settings.store_path)
    settings = load_settings(store, model=args.model)

    alias = None
    if args.patient_context:
        alias = AliasService(store).get_or_create(args.patient_context).alias
        narrative = substitute_identifiers(narrative, context_identifiers(args.patient_context), alias)
        logger.info(f"Using patient alias {alias}")

    if args.heuristic:
        generator = PlanGenerator(settings=settings)
    else:
        generator = PlanGenerator.from_settings(settings)
    result = generator.generate(narrative, patient_alias=alias)

    results: Dict[str, Any] = {
        "plan": result.plan.model_dump(mode="json"),
        "metadata": result.metadata.model_dump(mode="json"),
    }

    if args.execute:
        surface = ChartDocumentSurface(load_chart(args.chart))
        executor = PlanExecutor(settle_delay=settings.settle_delay_seconds)
        report = executor.execute(result.plan, surface)
        results["execution"] = report.model_dump(mode="json")
        results["chart"] = surface.chart.model_dump(mode="json")

    # Always display results in terminal
    rprint(results)

    if args.output_format and args.save_results:
        save_results(results, args.output_format, args.save_results)


if __name__ == "__main__":
    main()
