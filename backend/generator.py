import asyncio
import logging
import os
import re
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from openai import AsyncOpenAI, OpenAIError

from backend.errors import ConfigurationError, GenerationError, ValidationError
from backend.schemas import GeneratedContent, check_length

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

# [Your Name], [Company Address], [Date] ...
PLACEHOLDER_RE = re.compile(
    r"\[[^\]\n]*\b(your|name|phone|e-?mail|address|date|company|hiring manager|city|contact)\b[^\]\n]*\]",
    re.IGNORECASE,
)

SUMMARY_SYSTEM = (
    "You are an expert resume writer who creates compelling, tailored professional "
    "summaries that help job seekers stand out to employers."
)

COVER_LETTER_SYSTEM = (
    "You are an expert career coach who writes compelling, personalized cover letters "
    "that help job seekers get interviews."
)

SUMMARY_PROMPT = """Write a tailored professional summary for the candidate below, aimed at the job below.

RESUME CONTENT:
{resume}

JOB DESCRIPTION:
{job_description}

RULES:
- Never write placeholders such as [Your Name], [Your Phone Number], [Your Email] or [Your Address].
- Leave out contact information and personal details entirely.
- Use only facts that can be inferred from the resume. If a detail is unknown, omit it.
- Focus on the skills, experience, achievements and qualifications in the resume.

The summary must be 3-4 sentences, use keywords from the job description naturally,
quantify achievements where the resume allows it and keep a confident, professional tone.

Reply with the summary text only.
"""

COVER_LETTER_PROMPT = """Write a cover letter for the candidate below, applying to the job below.

RESUME CONTENT:
{resume}

JOB DESCRIPTION:
{job_description}

RULES:
- Never write placeholders such as [Your Name], [Your Phone Number], [Your Email],
  [Your Address], [Date] or [Company Address].
- Leave out contact information and addresses.
- Use only facts that can be inferred from the resume and the job description. When the
  company or a contact person is unknown, use a generic but professional wording.
- Open with "Dear Hiring Manager" unless the job description names a contact.
- Close with "Sincerely," and nothing after it.

Use 3-4 short paragraphs: interest in the role, the 2-3 most relevant experiences with
concrete results, how the candidate addresses the employer's needs, and a call to action.

Reply with the cover letter text only.
"""


def find_placeholder(text: str) -> Optional[str]:
    match = PLACEHOLDER_RE.search(text)
    return match.group(0) if match else None


class ContentGenerator:
    """Tailored summary and cover letter generation through OpenAI chat completions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        client: Optional[AsyncOpenAI] = None,
        temperature: float = 0.7,
    ):
        if client is None:
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY environment variable is required")
            client = AsyncOpenAI(api_key=api_key)
        self.client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_env(cls) -> "ContentGenerator":
        load_dotenv(find_dotenv(usecwd=True))
        return cls(
            api_key=os.getenv("OPENAI_API_KEY"),
            model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
        )

    async def _complete(self, system: str, prompt: str, max_tokens: int, what: str) -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=self.temperature,
            )
        except OpenAIError as e:
            logger.error(f"Error generating {what}: {e}")
            raise GenerationError(str(e), message=f"Failed to generate {what}")

        text = ""
        if completion.choices:
            text = (completion.choices[0].message.content or "").strip()
        if not text:
            raise GenerationError("empty completion", message=f"Failed to generate {what}")

        placeholder = find_placeholder(text)
        if placeholder:
            raise GenerationError(
                f"output contains placeholder {placeholder}", message=f"Failed to generate {what}"
            )
        return text

    async def summarize(self, resume: str, job_description: str) -> str:
        prompt = SUMMARY_PROMPT.format(resume=resume, job_description=job_description)
        return await self._complete(SUMMARY_SYSTEM, prompt, 300, "tailored summary")

    async def cover_letter(self, resume: str, job_description: str) -> str:
        prompt = COVER_LETTER_PROMPT.format(resume=resume, job_description=job_description)
        return await self._complete(COVER_LETTER_SYSTEM, prompt, 600, "cover letter")

    async def generate_both(self, resume: str, job_description: str) -> GeneratedContent:
        """Run both generations concurrently. Either failing fails the whole call
        and cancels the other one."""
        summary_task = asyncio.ensure_future(self.summarize(resume, job_description))
        letter_task = asyncio.ensure_future(self.cover_letter(resume, job_description))
        try:
            summary, letter = await asyncio.gather(summary_task, letter_task)
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(str(e), message="Failed to generate tailored content")
        finally:
            for task in (summary_task, letter_task):
                if not task.done():
                    task.cancel()

        try:
            check_length("tailored_summary", summary)
            check_length("cover_letter", letter)
        except ValidationError as e:
            raise GenerationError(e.message, message="Failed to generate tailored content")
        return GeneratedContent(tailored_summary=summary, cover_letter=letter)
