"""Prompt template used to ground answers in retrieved evidence."""

from __future__ import annotations

from collections.abc import Sequence

from langchain_core.prompts import PromptTemplate

from kb_chat.types import EvidenceDocument

SYSTEM_TEMPLATE = """Answer the user's question based on the context below.
Present your answer in a structured Markdown format.

If the context doesn't contain any relevant information to the question, don't make something up and just say "I don't know":

<context>
{context}
</context>

<chat_history>
{chatHistory}
</chat_history>

<question>
{question}
</question>

Answer:
"""

_PROMPT = PromptTemplate.from_template(SYSTEM_TEMPLATE)


def format_documents(documents: Sequence[EvidenceDocument]) -> str:
    return "\n\n".join(document.text for document in documents)


def assemble_prompt(question: str, chat_history: str, context: str) -> str:
    return _PROMPT.format(question=question, chatHistory=chat_history, context=context)
