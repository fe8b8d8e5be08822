import hashlib
import json
import logging
import re
import time
from typing import List, Optional

from langchain.chat_models import init_chat_model
from langchain_core.exceptions import OutputParserException
from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate

from models.plan_models import StudyPlan
from models.schedule_models import Topic, TopicSuggestions, TopicType, WeekContent
from utils.config import AppConfig
from utils.errors import ExternalCallError
from utils.logging import log_ai_request, log_ai_fallback
from utils.result import Ok, Fallback, Result


MAX_LINE_TARGETS = 5

_BULLET_PATTERN = re.compile(r"^(?:[-*•]|\d+[.)])\s+")


def _escaped_format_instructions(parser: PydanticOutputParser) -> str:
    return parser.get_format_instructions().replace("{", "{{").replace("}", "}}")


def _strip_code_fences(content: str) -> str:
    content = content.strip()
    if content.startswith('```json'):
        content = content.replace('```json', '').replace('```', '').strip()
    elif content.startswith('```'):
        content = content.replace('```', '').strip()
    return content


def _message_text(response) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # content blocks from multimodal providers
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return str(content or "").strip()


def _primary_subject(plan: StudyPlan, default: str = "core") -> str:
    return plan.subjects[0] if plan.subjects else default


class ScheduleContentAgent:
    """Asks the language model for topics, daily targets and week content.

    Every public method returns ``Ok`` with generated content or ``Fallback``
    with a fixed substitute; model and parsing failures never propagate.
    """

    AGENT_TYPE = "schedule_content_agent"

    def __init__(self, llm_model: Optional[BaseChatModel] = None):
        self.llm_model = llm_model
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_model_name(cls, model_name: str = AppConfig.LLM_MODEL,
                        temperature: float = AppConfig.LLM_TEMPERATURE) -> "ScheduleContentAgent":
        return cls(init_chat_model(model_name, temperature=temperature))

    async def _generate(self, prompt_template: ChatPromptTemplate, inputs: dict, purpose: str) -> str:
        """Send one prompt to the model and return its text, timing and logging the call"""
        if self.llm_model is None:
            raise ExternalCallError("No text-generation model configured")

        prompt_value = await prompt_template.ainvoke(inputs)
        prompt_digest = hashlib.sha256(prompt_value.to_string().encode("utf-8")).hexdigest()[:12]
        agent_type = f"{self.AGENT_TYPE}:{purpose}"

        start_time = time.time()
        try:
            response = await self.llm_model.ainvoke(prompt_value)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_ai_request(agent_type, prompt_digest, duration_ms, succeeded=False)
            raise ExternalCallError(f"{purpose} request failed: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        log_ai_request(agent_type, prompt_digest, duration_ms)

        text = _message_text(response)
        if not text:
            raise ExternalCallError(f"Empty text in {purpose} response")
        return text

    def _fallback(self, purpose: str, value, error: Exception) -> Fallback:
        self.logger.error(f"Error generating {purpose}: {error}")
        log_ai_fallback(f"{self.AGENT_TYPE}:{purpose}", str(error))
        return Fallback(value, reason=str(error))

    async def topics_for(self, subject: str, day_number: int, plan: StudyPlan) -> Result[List[Topic]]:
        """Topics for one study session of ``subject`` on ``day_number``"""
        fallback_topics = [Topic(name=f"{subject} Basics", type=TopicType.NEW, difficulty=1)]

        parser = PydanticOutputParser(pydantic_object=TopicSuggestions)
        prompt_template = ChatPromptTemplate.from_messages([
            ("system",
             "You are an expert exam coach who breaks subjects into focused, well-sequenced study topics."),
            ("human",
             "Generate topics for {subject} study on day {day_number} of {exam} preparation.\n\n"
             "Context:\n"
             "- Study style: {study_style}\n"
             "- Exam attempt number: {attempts}\n"
             "- Each topic needs a type (NEW, REVISION or PRACTICE), a difficulty from 1 to 5 "
             "and, where you can estimate it, a duration in minutes\n\n"
             f"Format your response according to this schema:\n{_escaped_format_instructions(parser)}")
        ])

        try:
            text = await self._generate(prompt_template, {
                "subject": subject,
                "day_number": day_number,
                "exam": plan.exam,
                "study_style": ", ".join(plan.study_style) or "not specified",
                "attempts": plan.number_of_attempts,
            }, "topics")

            cleaned = _strip_code_fences(text)
            if cleaned.startswith("["):
                # bare array of topics instead of the wrapper object
                cleaned = json.dumps({"topics": json.loads(cleaned)})
            suggestions = parser.parse(cleaned)
        except (ExternalCallError, OutputParserException, json.JSONDecodeError) as e:
            return self._fallback("topics", fallback_topics, e)

        if not suggestions.topics:
            return self._fallback("topics", fallback_topics, ValueError("model returned no topics"))
        return Ok(suggestions.topics)

    async def daily_targets_for(self, plan: StudyPlan, day_number: int) -> Result[List[str]]:
        """3-5 study targets for the day; never empty"""
        fallback_targets = [f"Study {_primary_subject(plan)} concepts"]

        prompt_template = ChatPromptTemplate.from_messages([
            ("system", "You are an expert exam coach who sets concrete, checkable daily study targets."),
            ("human",
             "Generate 3-5 specific study targets for day {day_number} of {exam} preparation.\n"
             "Consider subjects: {subjects}\n"
             "Format: Return a JSON array of target strings")
        ])

        try:
            text = await self._generate(prompt_template, {
                "day_number": day_number,
                "exam": plan.exam,
                "subjects": ", ".join(plan.subjects),
            }, "daily_targets")
        except ExternalCallError as e:
            return self._fallback("daily_targets", fallback_targets, e)

        cleaned = _strip_code_fences(text)
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            # Plain-text answer: one target per line
            lines = [_BULLET_PATTERN.sub("", line.strip()) for line in cleaned.splitlines()]
            lines = [line for line in lines if line][:MAX_LINE_TARGETS]
            if not lines:
                return self._fallback("daily_targets", fallback_targets, ValueError("no targets in response"))
            return Ok(lines)

        if not isinstance(parsed, list):
            return self._fallback("daily_targets", fallback_targets, ValueError("response is not a JSON array"))

        targets = [str(item).strip() for item in parsed if str(item).strip()]
        if not targets:
            return self._fallback("daily_targets", fallback_targets, ValueError("response array is empty"))
        return Ok(targets)

    async def week_content_for(self, plan: StudyPlan, week_number: int, total_weeks: int) -> Result[WeekContent]:
        """Focus, targets and tests for one week of the plan"""
        fallback_content = WeekContent(
            focus=f"Week {week_number} Core Studies",
            weekly_targets=[f"Master {_primary_subject(plan)}"],
        )

        parser = PydanticOutputParser(pydantic_object=WeekContent)
        prompt_template = ChatPromptTemplate.from_messages([
            ("system",
             "You are an expert study planner who creates progressive weekly schedules for exam preparation."),
            ("human",
             "Generate week {week_number} of {total_weeks} schedule for {exam}.\n"
             "Subjects: {subjects}\n"
             "Include:\n"
             "- Weekly focus\n"
             "- Weekly targets\n"
             "- Weekly tests or assessments\n\n"
             f"Format your response according to this schema:\n{_escaped_format_instructions(parser)}")
        ])

        try:
            text = await self._generate(prompt_template, {
                "week_number": week_number,
                "total_weeks": total_weeks,
                "exam": plan.exam,
                "subjects": ", ".join(plan.subjects),
            }, "week_content")
            content = parser.parse(_strip_code_fences(text))
        except (ExternalCallError, OutputParserException) as e:
            return self._fallback("week_content", fallback_content, e)

        return Ok(content)

    @staticmethod
    def pace_for(topics: List[Topic]) -> str:
        """Recommended pace from the average topic difficulty"""
        difficulties = [topic.difficulty or 3 for topic in topics] or [3]
        average = sum(difficulties) / len(difficulties)

        if average >= 4:
            return "Take extra time for complex concepts"
        if average >= 3:
            return "Maintain steady pace"
        return "Can proceed quickly if concepts are clear"
