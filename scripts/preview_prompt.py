"""Render the analysis prompt for a saved activity payload without calling the model."""
import argparse
import json
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from workout_insight.config import get_settings
from workout_insight.models.schemas import AnalyzeRequest
from workout_insight.services.prompt_builder import PromptBuilder, load_prompt_template
from workout_insight.services.stream_sampler import prepare_samples


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Preview the prompt generated for an analysis request body",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default template version
  python scripts/preview_prompt.py request.json

  # Compare with another template variant
  python scripts/preview_prompt.py request.json --version coach_id_v2
        """
    )
    parser.add_argument("payload", type=Path, help="JSON file shaped like the POST /api/analysis body")
    parser.add_argument("--version", type=str, help="Prompt template version (default: active_version)")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = get_settings()

    with args.payload.open("r", encoding="utf-8") as fh:
        request = AnalyzeRequest.model_validate(json.load(fh))

    if request.profile is None or request.activity is None:
        print("❌ Payload must contain both 'profile' and 'activity'")
        sys.exit(1)

    samples = prepare_samples(request.samples, request.streams, settings.sample_max_points)

    template = load_prompt_template(settings.prompt_config_path, args.version or settings.prompt_version)
    builder = PromptBuilder(template)

    print(f"Template: {builder.version} ({template.language}) | samples used: {len(samples)}")
    print("=" * 60)
    print(builder.build(request.activity, samples, request.profile))


if __name__ == "__main__":
    main()
