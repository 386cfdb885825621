"""Test generation calls: prompt, send, parse."""

import logging
from typing import List, Optional, Sequence

from diff_test_generator.generation.clients.base import LLMTransport
from diff_test_generator.generation.context_optimizer import FixContext
from diff_test_generator.generation.prompts import (
    Message,
    build_coverage_summary_prompt,
    build_test_fix_prompt,
    build_test_generation_prompt,
    build_test_scaffold_prompt,
)
from diff_test_generator.generation.response_parser import parse_test_code
from diff_test_generator.models.data_models import GenerationResult, TestGenerationSummary, TestTarget, TokenUsage

logger = logging.getLogger(__name__)

COVERAGE_SUMMARY_MAX_TOKENS = 500
COVERAGE_SUMMARY_TEMPERATURE = 0.3


class TestGenerator:
    """Generate, scaffold and repair tests through an LLM transport."""

    def __init__(self, transport: LLMTransport, config):
        self.transport = transport
        self.config = config
        self.framework = config.get('test_generation.framework', 'pytest')
        self.max_tokens = config.get('llm.max_tokens', 4000)
        self.temperature = config.get('llm.temperature', 0.2)
        self.fix_temperature = config.get('llm.fix_temperature', 0.1)

    def generate_test(self, target: TestTarget, existing_test_file: Optional[str] = None,
                      related_functions: Optional[Sequence[TestTarget]] = None) -> GenerationResult:
        messages = build_test_generation_prompt(target, self.framework, existing_test_file, related_functions)
        logger.debug(f"Requesting tests for {target.identity}")
        return self._send(messages, self.temperature, refine=False)

    def generate_test_scaffold(self, target: TestTarget,
                               existing_test_file: Optional[str] = None) -> GenerationResult:
        messages = build_test_scaffold_prompt(target, self.framework, existing_test_file)
        logger.debug(f"Requesting scaffold for {target.identity}")
        return self._send(messages, self.temperature, refine=False)

    def fix_test(self, context: FixContext, attempt: int, max_attempts: int) -> GenerationResult:
        messages = build_test_fix_prompt(context, self.framework, attempt, max_attempts)
        logger.debug(f"Requesting fix {attempt}/{max_attempts} for {context.test_file}")
        return self._send(messages, self.fix_temperature, refine=True)

    def generate_coverage_summary(self, summary: TestGenerationSummary) -> str:
        """Prose reading of the run's coverage; raises like any other request."""
        messages = build_coverage_summary_prompt(summary)
        raw = self.transport.generate(
            system_prompt=messages[0]['content'],
            user_content=messages[1]['content'],
            max_tokens=COVERAGE_SUMMARY_MAX_TOKENS,
            temperature=COVERAGE_SUMMARY_TEMPERATURE,
        )
        return raw.strip()

    def _send(self, messages: List[Message], temperature: float, refine: bool) -> GenerationResult:
        system_prompt = next(m['content'] for m in messages if m['role'] == 'system')
        user_content = "\n\n".join(m['content'] for m in messages if m['role'] == 'user')
        call = self.transport.refine if refine else self.transport.generate
        raw = call(
            system_prompt=system_prompt,
            user_content=user_content,
            max_tokens=self.max_tokens,
            temperature=temperature,
        )

        usage = None
        reported = self.transport.get_token_usage()
        if reported:
            usage = TokenUsage(input_tokens=reported.get('input', 0), output_tokens=reported.get('output', 0))
        return GenerationResult(test_code=parse_test_code(raw), usage=usage)
