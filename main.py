"""
Main entry point for the application

Runs the batch theme analysis over every storyteller transcript:
1. Load transcripts and the theme catalog
2. Ask Gemini for themes, emotions, quotes and a summary for each transcript
3. Map the model's themes onto the catalog, keeping theme usage diverse
4. Save every result and the progress checkpoint as it goes

Usage:
    python main.py              # analyse everything not done yet
    python main.py --reset      # forget the checkpoint and start over
    python main.py --limit 10   # only attempt 10 transcripts this run
    python main.py --report     # only print statistics, community insights and theme diversity
"""
import sys
from typing import List, Optional

from layer_1_data_import.storage import ConfigurationError
from layer_3_batch_analysis.analyze_transcripts import analyze_all_transcripts, report_analysis
from utils.logger import get_logger, log_banner

# Set up logging so we can see what's happening
logger = get_logger(__name__)


def parse_limit(argv: List[str]) -> int:
    """Value of `--limit N` (0 when absent)"""
    if "--limit" not in argv:
        return 0
    index = argv.index("--limit")
    try:
        return max(0, int(argv[index + 1]))
    except (IndexError, ValueError):
        raise ValueError("--limit needs a whole number, e.g. --limit 10")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point - runs the batch analysis

    Returns:
        0 when the run finished or was cancelled (progress is saved either
        way), 1 when setup failed and nothing was attempted
    """
    argv = sys.argv[1:] if argv is None else argv

    try:
        log_banner(logger, "Story Insights Analyser - Starting")

        if "--report" in argv:
            report_analysis()
            return 0

        summary = analyze_all_transcripts(reset="--reset" in argv, limit=parse_limit(argv))

        logger.info("\n" + "=" * 60)
        if summary.cancelled:
            logger.info("Stopped early. Run again to continue where it left off.")
        else:
            logger.info(f"Analysis complete! {summary.processed_count} transcripts processed")
        if summary.failed_count:
            logger.info(f"{summary.failed_count} transcripts failed; run again to retry them")
        logger.info("=" * 60)
        return 0

    except ConfigurationError as e:
        logger.error(f"Setup failed, nothing was processed: {e}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1


# Exit with the return code (0 = success, 1 = error)
if __name__ == "__main__":
    sys.exit(main())
