"""
HybridX API - Gemini AI Service.

Generates one-off workouts, short extensions of an existing workout and
weekly reviews with suggested plan adjustments.
Responses are asked for as JSON and validated into the workout models.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import errors as genai_errors
from pydantic import ValidationError as PydanticValidationError

from hybridx.models.session import WorkoutSession
from hybridx.models.user import User
from hybridx.models.workout import Exercise, WeekAnalysis, Workout, WorkoutAdjustment
from hybridx.utils.errors import ExternalServiceError
from settings import settings


logger = logging.getLogger(__name__)

EXPERIENCE_GUIDANCE = """- Beginners should have simpler movements and lower volume.
- Intermediate athletes can handle more complex movements and moderate volume.
- Advanced athletes can be challenged with high-skill movements, heavy weights, and high volume."""


class GeminiService:
    """
    Gemini API service for AI-generated workout content.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key. Falls back to settings if not provided.
            model: Model name. Falls back to settings.GEMINI_MODEL.
            client: Preconfigured ``genai.Client``.
        """
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = genai.Client(api_key=self.api_key)
        else:
            self.client = None

    def _extract_json(self, text: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Extract and parse JSON from Gemini response.
        """
        if not text:
            return None
        if "```json" in text:
            start = text.find("```json") + 7
            end = text.find("```", start)
            text = text[start:end].strip()
        elif "```" in text:
            start = text.find("```") + 3
            end = text.find("```", start)
            text = text[start:end].strip()

        json_start = text.find("{")
        json_end = text.rfind("}") + 1
        if json_start == -1 or json_end <= json_start:
            return None
        try:
            return json.loads(text[json_start:json_end])
        except json.JSONDecodeError as e:
            logger.error(f"JSON parsing error: {str(e)}")
            return None

    async def _generate_json(self, prompt: str, purpose: str) -> Dict[str, Any]:
        if self.client is None:
            logger.error("Gemini API key not configured")
            raise ExternalServiceError("gemini", "AI coaching is not available right now")

        try:
            response = await self.client.aio.models.generate_content(model=self.model, contents=prompt)
        except genai_errors.APIError as e:
            logger.error(f"Gemini {purpose} error: {str(e)}")
            raise ExternalServiceError("gemini", "AI coaching is not available right now", detail=str(e))

        result = self._extract_json(response.text)
        if result is None:
            logger.error(f"Gemini {purpose} returned no usable JSON")
            raise ExternalServiceError("gemini", "AI coaching returned an invalid response")
        return result

    async def generate_workout(self, first_name: str, experience: str) -> Workout:
        """Generate a single creative one-off workout tailored to the athlete's level."""
        prompt = f"""You are an elite strength and conditioning coach specializing in HYROX and functional fitness.
Generate a single, creative and effective one-off workout for an athlete named {first_name or "Athlete"}.

The workout can be a strength focus, a metcon, a running workout, or a hybrid of both.
The athlete's experience level is: {experience}. Tailor complexity and volume to this level.
{EXPERIENCE_GUIDANCE}

Return ONLY a valid JSON object with these exact fields (no markdown, no code blocks):
{{
    "title": "<creative, motivating workout title>",
    "exercises": [{{"name": "<exercise>", "details": "<sets, reps or duration>"}}]
}}
"""
        result = await self._generate_json(prompt, "workout generation")
        try:
            return Workout(
                day=0,
                title=result.get("title") or "AI Workout",
                program_type="hyrox",
                exercises=[Exercise.model_validate(e) for e in result.get("exercises", [])],
            )
        except PydanticValidationError as e:
            logger.error(f"Gemini workout did not match the workout schema: {e.error_count()} errors")
            raise ExternalServiceError("gemini", "AI coaching returned an invalid workout", detail=str(e))

    async def extend_workout(self, workout: Workout) -> List[Exercise]:
        """Suggest 2-3 complementary exercises to add to the end of a workout."""
        existing = json.dumps([e.model_dump() for e in workout.exercises] or [r.description for r in workout.runs])
        prompt = f"""You are an expert strength and conditioning coach who designs intelligent workout extensions.
The athlete has finished the main part of their workout and wants a short complementary block.
Do NOT simply add more of the same exercises.

Original workout:
- Title: {workout.title}
- Type: {workout.program_type}
- Exercises: {existing}

Return ONLY a valid JSON object (no markdown, no code blocks):
{{
    "new_exercises": [{{"name": "<exercise>", "details": "<sets, reps or duration>"}}]
}}
"""
        result = await self._generate_json(prompt, "workout extension")
        try:
            return [Exercise.model_validate(e) for e in result.get("new_exercises", [])]
        except PydanticValidationError as e:
            logger.error(f"Gemini extension did not match the exercise schema: {e.error_count()} errors")
            raise ExternalServiceError("gemini", "AI coaching returned invalid exercises", detail=str(e))


    async def analyze_week(
        self,
        user: User,
        recent_sessions: List[WorkoutSession],
        upcoming_workouts: List[Workout],
        custom_request: Optional[str] = None,
    ) -> WeekAnalysis:
        """
        Review recent feedback and suggest changes to the coming week.

        Suggestions for days outside ``upcoming_workouts`` or that do not
        validate are dropped; the rest are returned for the user to accept.
        """
        history = "\n".join(
            f"- Date: {s.workout_date.isoformat()} | Workout: {s.workout_title} | Skipped: {s.skipped}\n"
            f"  Notes: \"{s.notes}\""
            for s in recent_sessions
        ) or "- No sessions logged yet"
        upcoming = json.dumps([w.model_dump() for w in upcoming_workouts])
        request_line = f"\nThe athlete also asked: {custom_request}\n" if custom_request else ""
        prompt = f"""You are an expert adaptive training coach. Analyze an athlete's recent feedback and adjust
their upcoming training week only if their history strongly suggests it.

Athlete: {user.first_name or "Athlete"} | Goal: {user.goal or "Improve fitness"} | Experience: {user.experience}

Recent training history:
{history}

Upcoming scheduled workouts (next 7 days, JSON):
{upcoming}
{request_line}
Look for pain or injury, fatigue, workouts that were too easy, and life stress.
- Pain or injury: avoid aggravating the area with suitable substitutions.
- Fatigue: reduce volume or intensity for the next 2-3 days.
- Too easy: slightly increase volume or complexity of the next key session.
- No issues: do NOT change anything.

Return ONLY a valid JSON object (no markdown, no code blocks):
{{
    "analysis": "<brief summary of how the athlete is doing>",
    "needs_adjustment": <true only if you change something>,
    "adjustments": [{{
        "day": <day number of the workout being modified>,
        "original_title": "<title>",
        "modified_title": "<new title>",
        "reason": "<why, based on the athlete's feedback>",
        "modified_workout": <full workout object in the same shape as the upcoming workouts>
    }}]
}}
"""
        result = await self._generate_json(prompt, "week analysis")

        upcoming_days = {w.day for w in upcoming_workouts}
        adjustments = []
        for raw in result.get("adjustments") or []:
            try:
                adjustment = WorkoutAdjustment.model_validate(raw)
            except PydanticValidationError as e:
                logger.warning(f"Dropping malformed adjustment from Gemini: {e.error_count()} errors")
                continue
            if adjustment.day not in upcoming_days:
                logger.warning(f"Dropping adjustment for day {adjustment.day}, not in the coming week")
                continue
            adjustments.append(adjustment)

        return WeekAnalysis(
            analysis=str(result.get("analysis") or ""),
            needs_adjustment=bool(result.get("needs_adjustment")) and bool(adjustments),
            adjustments=adjustments,
        )


_gemini_service: Optional[GeminiService] = None


def get_gemini_service() -> GeminiService:
    """Global Gemini service instance."""
    global _gemini_service
    if _gemini_service is None:
        _gemini_service = GeminiService()
    return _gemini_service
