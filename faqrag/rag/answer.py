"""Grounded answer generation.

Builds a prompt from retrieved chunks and runs the generative gateway against
a wall-clock deadline. No retries here: retry policy belongs to the gateway.
"""
import asyncio
import enum
from typing import Optional, Sequence
import structlog

from faqrag.errors import GenerationFailed, GenerationTimeout, InvalidParameter
from faqrag.llm_client import GenerativeGateway
from faqrag.rag.models import Chunk

logger = structlog.get_logger()

PROMPT_TEMPLATE = """Use the following pieces of context to answer the question at the end.
If you don't know the answer, just say that you don't know, don't try to make up an answer.
Do not answer the question if there is no given context.
Do not answer the question if it is not related to the context.
Do not give recommendations about anything other than {domain}.

Context:
{context}

Question: {question}
"""


class SynthesisState(enum.Enum):
    IDLE = "idle"
    ASSEMBLING_PROMPT = "assembling_prompt"
    AWAITING_GENERATION = "awaiting_generation"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    GENERATION_FAILED = "generation_failed"


def format_context(chunks: Sequence[Chunk]) -> str:
    """Join chunk contents in rank order, separated by a blank line."""
    return "\n\n".join(chunk.content for chunk in chunks)


def build_prompt(question: str, context: str, domain: str) -> str:
    return PROMPT_TEMPLATE.format(domain=domain, context=context, question=question)


def _discard_result(task: asyncio.Task) -> None:
    # Consume the outcome of an abandoned generation so it is never reported
    if not task.cancelled():
        task.exception()


class AnswerSynthesizer:
    """Assembles the grounded prompt and awaits generation under a deadline."""

    def __init__(
        self,
        generator: GenerativeGateway,
        domain: str,
        timeout: float = 30.0,
    ):
        if timeout <= 0:
            raise InvalidParameter(
                f"Timeout must be positive, got {timeout}",
                operation="synthesizer_init",
            )
        self.generator = generator
        self.domain = domain
        self.timeout = timeout
        self.state = SynthesisState.IDLE

    async def answer(
        self,
        question: str,
        chunks: Sequence[Chunk],
        timeout: Optional[float] = None,
    ) -> str:
        """Generate an answer grounded in the retrieved chunks.

        Args:
            question: The user's question
            chunks: Retrieved chunks, best first (may be empty)
            timeout: Deadline in seconds (defaults to the instance timeout)

        Returns:
            The generated text, unmodified

        Raises:
            GenerationTimeout: If generation misses the deadline
            GenerationFailed: If the gateway fails
        """
        timeout = self.timeout if timeout is None else timeout
        if timeout <= 0:
            raise InvalidParameter(
                f"Timeout must be positive, got {timeout}",
                operation="answer",
            )

        self.state = SynthesisState.ASSEMBLING_PROMPT
        if not chunks:
            logger.info("empty_retrieval", question_preview=question[:100])
        context = format_context(chunks)
        prompt = build_prompt(question, context, self.domain)

        self.state = SynthesisState.AWAITING_GENERATION
        logger.info(
            "generation_started",
            num_chunks=len(chunks),
            prompt_length=len(prompt),
            timeout=timeout,
        )

        task = asyncio.ensure_future(self.generator.generate(prompt))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            # Abandon the in-flight call; its eventual result is discarded
            task.add_done_callback(_discard_result)
            task.cancel()
            self.state = SynthesisState.TIMED_OUT
            logger.error("generation_timed_out", timeout=timeout)
            raise GenerationTimeout(
                f"Generation did not finish within {timeout}s",
                operation="answer",
            )

        try:
            answer = task.result()
        except GenerationFailed as e:
            self.state = SynthesisState.GENERATION_FAILED
            logger.error("generation_failed", error=str(e))
            raise
        except Exception as e:
            self.state = SynthesisState.GENERATION_FAILED
            logger.error(
                "generation_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GenerationFailed(
                f"Generation failed: {e}",
                operation="answer",
            ) from e

        self.state = SynthesisState.COMPLETED
        logger.info("generation_completed", answer_length=len(answer))
        return answer
