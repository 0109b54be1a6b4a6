from __future__ import annotations

from stockfunnel.ai.client import HttpJudgeClient, JudgeClient, JudgeResponse
from stockfunnel.ai.evaluator import AIEvaluator
from stockfunnel.ai.prompt import PROMPT_VERSION, PromptBuilder
from stockfunnel.ai.verdict import Verdict, parse_verdict

__all__ = [
    "AIEvaluator",
    "HttpJudgeClient",
    "JudgeClient",
    "JudgeResponse",
    "PROMPT_VERSION",
    "PromptBuilder",
    "Verdict",
    "parse_verdict",
]
