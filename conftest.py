"""Root test setup: puts api.py/main.py on the path and keeps the evaluator offline."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from address_verifier.exceptions import EvaluatorUnavailable  # noqa: E402


@pytest.fixture(autouse=True)
def _no_llm_calls():
    """Prevent real LLM API calls during tests; every evaluation takes the fallback."""
    with patch(
        "address_verifier.evaluator.evaluate_with_llm",
        side_effect=EvaluatorUnavailable("LLM disabled in tests"),
    ):
        yield
