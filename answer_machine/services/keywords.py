"""Search keyword extraction for sub-questions."""

import json
import logging
import re
from typing import List, Optional
from uuid import UUID

from answer_machine.schemas.answer_machine import LlmConfig
from answer_machine.services.llm_client import LLMClient

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
MAX_KEYWORD_LENGTH = 50

STOP_WORDS = {
    "what", "when", "where", "which", "that", "this", "with", "from",
    "have", "been", "were", "does", "will", "would", "could", "should",
    "about", "after", "before", "their", "there", "these", "those",
    "they", "them", "then", "than", "such", "some", "same", "said",
    "each", "every", "other", "another", "between", "during", "while",
}

KEYWORD_SYSTEM_PROMPT = """You are a keyword extraction specialist. Extract the most relevant keywords and key phrases from the given question that would be useful for searching related content in a personal knowledge base.

Return a JSON object of the form {"keywords": ["keyword one", "keyword two"]} with the most important keywords and short phrases (2-4 words max each).

Focus on:
- Important nouns and noun phrases
- Specific names, dates, or identifiers
- Key concepts

Limit to 5-10 keywords. Return only the JSON object, no explanation."""


def extract_basic_keywords(question: str) -> List[str]:
    """Stop-word filtered words longer than 3 characters, first 8, deduplicated."""
    words = re.sub(r"[^\w\s]", " ", question.lower()).split()
    meaningful = [w for w in words if len(w) > 3 and w not in STOP_WORDS][:8]
    return list(dict.fromkeys(meaningful))


def parse_keywords(content: str) -> List[str]:
    """Parse an LLM reply as a JSON list, a `{"keywords": [...]}` object, or delimited text."""
    content = content.strip()
    try:
        parsed = json.loads(content)
        if isinstance(parsed, list):
            return [str(k) for k in parsed][:MAX_KEYWORDS]
        if isinstance(parsed, dict) and isinstance(parsed.get("keywords"), list):
            return [str(k) for k in parsed["keywords"]][:MAX_KEYWORDS]
    except ValueError:
        pass

    keywords = []
    for part in re.split(r"[,;\n]", content):
        keyword = part.strip().strip("\"'")
        if 0 < len(keyword) <= MAX_KEYWORD_LENGTH:
            keywords.append(keyword)
    return keywords[:MAX_KEYWORDS]


class KeywordGenerator:
    """Extracts search keywords from a question with the LLM, falling back to plain text processing."""

    def __init__(self, llm_client: LLMClient):
        self.llm = llm_client

    def generate(self, question: str, username: str, config: Optional[LlmConfig] = None) -> List[str]:
        if config is None:
            logger.warning(f"No LLM config for keyword generation (user {username}), using basic extraction")
            return extract_basic_keywords(question)

        try:
            result = self.llm.call(
                config,
                [
                    {"role": "system", "content": KEYWORD_SYSTEM_PROMPT},
                    {"role": "user", "content": f"Question: {question}"},
                ],
                temperature=0.3,
                max_tokens=200,
                json_mode=True,
            )
            if not result.success or not result.content:
                logger.warning(f"LLM keyword generation failed ({result.error}), using basic extraction")
                return extract_basic_keywords(question)

            keywords = parse_keywords(result.content)
            return keywords or extract_basic_keywords(question)

        except Exception as e:
            logger.error(f"Error in keyword generation: {e}", exc_info=True)
            return extract_basic_keywords(question)
