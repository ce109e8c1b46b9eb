from typing import Dict, Optional
from bs4 import BeautifulSoup
import re
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_HTML_MARKER = re.compile(r'<\s*(?:html|body|div|p|br|span|table|td|tr|a|img|style|script|meta|font|b|i|u|ul|ol|li|h[1-6])\b', re.IGNORECASE)


@dataclass
class ProcessedContent:
    """
    Structured container for processed content results.
    """
    content: str
    word_count: int
    truncated: bool
    processing_stats: Dict[str, int]


class ContentPreprocessor:
    """
    Prepares email bodies for prompt inclusion: strips HTML markup and bounds
    the body to a fixed number of words so prompts stay predictable.
    """

    def __init__(self, max_words: int = 1500, config: Optional[Dict] = None):
        self.max_words = max_words
        self.config = config or {}

    def preprocess_content(self, content: Optional[str]) -> ProcessedContent:
        """Clean and bound email content"""
        content = content or ""
        processing_stats = {"original_length": len(content)}

        cleaned_content = self._clean_html(content) if self._looks_like_html(content) else self._normalize_whitespace(content)
        processing_stats["cleaned_length"] = len(cleaned_content)

        final_content, truncated = self._enforce_word_limit(cleaned_content)
        word_count = len(final_content.split())
        processing_stats.update({
            "final_length": len(final_content),
            "word_count": word_count
        })

        if truncated:
            logger.debug(f"Email content truncated to {self.max_words} words "
                         f"(original length {processing_stats['original_length']})")

        return ProcessedContent(
            content=final_content,
            word_count=word_count,
            truncated=truncated,
            processing_stats=processing_stats
        )

    @staticmethod
    def _looks_like_html(content: str) -> bool:
        return bool(_HTML_MARKER.search(content))

    def _clean_html(self, content: str) -> str:
        """Clean HTML content from email body"""
        try:
            soup = BeautifulSoup(content, 'html.parser')

            # Remove script and style elements
            for element in soup(["script", "style", "head"]):
                element.decompose()

            text = soup.get_text(separator="\n")
            return self._normalize_whitespace(text)

        except Exception as e:
            logger.warning(f"HTML cleaning failed: {e}, returning original content")
            return content.strip()

    @staticmethod
    def _normalize_whitespace(text: str) -> str:
        # Collapse runs of spaces but keep paragraph breaks
        lines = (re.sub(r'[ \t\u00a0]+', ' ', line).strip() for line in text.splitlines())
        return '\n'.join(line for line in lines if line)

    def _enforce_word_limit(self, content: str):
        """Keep the opening two thirds and closing third of an over-long body"""
        if not content:
            return "", False

        words = content.split()
        if len(words) <= self.max_words:
            return content, False

        head = (self.max_words * 2) // 3
        tail = self.max_words - head
        limited = words[:head] + ["[...]"] + words[len(words) - tail:]
        return ' '.join(limited), True
