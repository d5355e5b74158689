import logging
from typing import Annotated, List, Optional, Union

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

import config
from errors import AnalysisFailed, AnalyzerNotConfigured

logger = logging.getLogger(__name__)

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
Overview = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=4000)]
GenreName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
MovieId = Union[Annotated[int, Field(ge=0)], Annotated[str, StringConstraints(pattern=r"^\d+$")]]


class ContentAnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    movie_id: Optional[MovieId] = Field(default=None, alias="movieId")
    title: Title
    overview: Overview
    genres: List[GenreName] = Field(default_factory=list, max_length=20)


class ContentAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mood: List[str] = Field(max_length=5)
    themes: List[str] = Field(max_length=10)
    similar_content: List[str] = Field(alias="similarContent", max_length=10)
    viewing_context: List[str] = Field(alias="viewingContext", max_length=6)
    content_warnings: List[str] = Field(alias="contentWarnings", max_length=10)
    analysis: str = Field(max_length=2000)


PROMPT_TEMPLATE = """
Analyze the following movie/show and provide insights:

Title: {title}
Overview: {overview}
Genres: {genres}

Please provide the following analysis:
1. Mood: What mood does this content evoke? (e.g., uplifting, tense, melancholic)
2. Themes: What are the main themes explored?
3. Similar Content: What other movies/shows might someone enjoy if they like this?
4. Viewing Context: When would be the best time to watch this? (e.g., date night, family movie night, solo viewing)
5. Content Warnings: Are there any elements viewers should be aware of? (violence, emotional intensity, etc.)

Format your response as JSON with the following structure:
{{
  "mood": ["primary mood", "secondary mood"],
  "themes": ["theme1", "theme2", "theme3"],
  "similarContent": ["title1", "title2", "title3"],
  "viewingContext": ["context1", "context2"],
  "contentWarnings": ["warning1", "warning2"],
  "analysis": "A paragraph with deeper insights about the content"
}}
"""


def build_prompt(request: ContentAnalysisRequest) -> str:
    return PROMPT_TEMPLATE.format(
        title=request.title,
        overview=request.overview,
        genres=", ".join(request.genres),
    )


class ContentAnalyzer:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = config.OPENAI_MODEL,
        client: Optional[AsyncOpenAI] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key or self._client)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def analyze(self, request: ContentAnalysisRequest) -> ContentAnalysis:
        if not self.configured:
            raise AnalyzerNotConfigured()

        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": build_prompt(request)}],
                response_format={"type": "json_object"},
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            content = response.choices[0].message.content or ""
            return ContentAnalysis.model_validate_json(content)
        except (OpenAIError, ValidationError, IndexError) as e:
            logger.error(f"Content analysis error for {request.title!r}: {str(e)}")
            raise AnalysisFailed() from e
