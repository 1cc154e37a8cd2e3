"""
Command-line entry point for the voice emergency pipeline.

Commands:
    config  Print the validated settings as JSON
    score   Score a piece of text and print the fused assessment
    serve   Run the session ingress and retention sweeper until interrupted
"""

import argparse
import asyncio
import json
import logging
import sys

from voice_emergency.core.logging import setup_logging
from voice_emergency.core.settings import get_settings
from voice_emergency.detection.fusion import FusionEngine
from voice_emergency.detection.text_scorer import LexicalEmergencyScorer
from voice_emergency.pipeline.ingress import SessionIngress
from voice_emergency.services.constants import SUPPORTED_LANGUAGES
from voice_emergency.voice.features import NEUTRAL_FEATURES

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Voice emergency detection pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("config", help="Print the validated settings")

    score = subparsers.add_parser("score", help="Score text for emergency content")
    score.add_argument("text", help="Transcript text to score")
    score.add_argument("--language", default="english", choices=SUPPORTED_LANGUAGES)

    subparsers.add_parser("serve", help="Run the pipeline until interrupted")
    return parser


def score_text(text: str, language: str) -> dict:
    """Lexical score plus the fused assessment with neutral audio."""
    settings = get_settings()
    signal = LexicalEmergencyScorer(threshold=settings.detection.text_threshold).score_text(text, language)
    assessment = FusionEngine(settings.detection).fuse(signal, NEUTRAL_FEATURES)
    return {
        "is_emergency": signal.is_emergency,
        "category": signal.category,
        "text_confidence": signal.confidence,
        "matched_keywords": list(signal.matched_keywords),
        "emotional_tone": signal.emotional_tone.value,
        "combined_confidence": assessment.confidence,
        "urgency_level": assessment.urgency_level.value,
        "recommendation": assessment.recommendation.value,
    }


async def serve() -> None:
    """Start background retention sweeping and wait for cancellation."""
    ingress = SessionIngress.from_settings(get_settings())
    await ingress.start()
    logger.info("Voice emergency pipeline running")
    try:
        await asyncio.Event().wait()
    finally:
        await ingress.shutdown()


def main(argv=None) -> int:
    """Run the command-line interface."""
    args = build_parser().parse_args(argv)

    if args.command == "config":
        print(json.dumps(get_settings().to_dict(), indent=2))
        return 0

    if args.command == "score":
        print(json.dumps(score_text(args.text, args.language), indent=2))
        return 0

    setup_logging(get_settings().logging)
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        print("\nPipeline stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
