"""Markdown + LaTeX rendering of question text for the test-taking page.

Math is left in place for MathJax to typeset in the browser; this module only
converts the surrounding markdown to HTML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from markdown_it import MarkdownIt

from exam_app.core.models import Question, QuestionType, Test


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        sanitized = markdown_text.strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def render_question(self, question: Question) -> dict[str, Any]:
        """Student-facing view of a question; correct answers are never included."""
        view: dict[str, Any] = {
            "id": question.id,
            "type": question.type.value,
            "order": question.order,
            "marks": question.marks,
            "required": question.required,
            "html": self.render_fragment(question.text),
        }
        if question.type is QuestionType.MCQ:
            view["options"] = list(question.options)
        if question.type is QuestionType.MATCH:
            view["left"] = [pair.left for pair in question.pairs]
            # Right-hand items are sorted so their position does not reveal the pairing.
            view["right"] = sorted(pair.right for pair in question.pairs)
        return view

    def render_test(self, test: Test) -> dict[str, Any]:
        return {
            "id": test.id,
            "title": test.title,
            "description_html": self.render_fragment(test.description) if test.description else None,
            "duration": test.duration,
            "totalMarks": test.total_marks,
            "questions": [self.render_question(q) for q in test.questions],
        }


# Shared by the API worker threads; rendering does not mutate the parser.
renderer = MarkdownMathRenderer()
