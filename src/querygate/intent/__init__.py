"""Natural-language intent analysis."""

from querygate.intent.analyzer import IntentAnalyzer, OpenAIIntentAnalyzer
from querygate.intent.pipeline import IntentPipeline

__all__ = ["IntentAnalyzer", "IntentPipeline", "OpenAIIntentAnalyzer"]
