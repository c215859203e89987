"""Prompt templates for comparison, synthesis, document chat and summaries."""

from __future__ import annotations

from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate

from crossdoc.types import ChatTurn, SourceReference, VectorHit

ANALYST_SYSTEM_PROMPT = "You are a document analysis expert. Always respond with valid JSON."

COMPARISON_PROMPT = """
Compare these two documents and identify:
1. Overall similarity (0-1 scale)
2. Common themes (list)
3. Content unique to Document 1
4. Content unique to Document 2
5. Key differences

Document 1 "{doc1_name}":
{doc1_content}

Document 2 "{doc2_name}":
{doc2_content}

Respond in JSON format:
{{
  "similarity": number,
  "commonThemes": [strings],
  "uniqueToDoc1": [strings],
  "uniqueToDoc2": [strings],
  "keyDifferences": [strings]
}}
""".strip()

CONFLICT_INSTRUCTION = (
    "Pay special attention to any conflicting information and mention it explicitly."
)

SYNTHESIS_PROMPT = """
Based on the following information from multiple documents, provide a comprehensive and unified answer to the question: "{query}"

Sources:
{sources}

Instructions:
1. Synthesize information from all sources
2. Highlight where sources agree or complement each other
3. Note any contradictions or conflicting information
4. Provide a confidence score (0-1) based on source quality and consistency
5. Create a coherent, well-structured answer

{conflict_instruction}

Respond in JSON format:
{{
  "consolidatedAnswer": "comprehensive answer",
  "confidence": number,
  "conflictingInfo": [{{"topic": "string", "conflicts": [{{"document": "string", "position": "string"}}]}}]
}}
""".strip()

DOCUMENT_CHAT_PROMPT = """
You are an intelligent document assistant. You help users understand and analyze their documents by answering questions based on the document content.

Document Context:
{context}

Conversation History:
{history}

Current Question: {question}

Instructions:
1. Answer the question based primarily on the provided document context
2. If the context doesn't contain relevant information, say so clearly
3. Be concise but comprehensive in your answers
4. Reference specific parts of the document when possible
5. If asked to summarize, provide key points and insights
6. Maintain conversational flow by considering the chat history

Answer:
""".strip()

BASIC_CHAT_PROMPT = """
You are a helpful AI assistant. A user is asking about a document called "{file_name}".

Conversation History:
{history}

Current Question: {question}

Instructions:
1. Be helpful and conversational
2. Since you don't have the full document context, be honest about limitations
3. Try to provide general guidance where possible
4. Suggest specific questions the user might ask
5. Maintain a friendly and professional tone

Answer:
""".strip()

SUMMARY_PROMPT = """
Please provide a comprehensive summary of this document: "{file_name}"

Document Content:
{content}

Create a summary that includes:
1. Main topic and purpose
2. Key points and findings
3. Important details or conclusions
4. Overall structure and organization

Summary:
""".strip()

_comparison_template = ChatPromptTemplate.from_messages(
    [("system", ANALYST_SYSTEM_PROMPT), ("human", COMPARISON_PROMPT)]
)
_synthesis_template = ChatPromptTemplate.from_messages([("human", SYNTHESIS_PROMPT)])
_document_chat_template = ChatPromptTemplate.from_messages(
    [("system", DOCUMENT_CHAT_PROMPT), ("human", "{question}")]
)
_basic_chat_template = ChatPromptTemplate.from_messages(
    [("system", BASIC_CHAT_PROMPT), ("human", "{question}")]
)
_summary_template = ChatPromptTemplate.from_messages([("human", SUMMARY_PROMPT)])


def comparison_messages(
    doc1_name: str,
    doc1_content: str,
    doc2_name: str,
    doc2_content: str,
) -> list[BaseMessage]:
    return _comparison_template.format_messages(
        doc1_name=doc1_name,
        doc1_content=doc1_content,
        doc2_name=doc2_name,
        doc2_content=doc2_content,
    )


def format_sources(sources: list[SourceReference]) -> str:
    """Numbered context block, one `[Source N - name]: content` entry per source."""

    return "\n\n".join(
        f"[Source {index} - {source.source_name}]: {source.content}"
        for index, source in enumerate(sources, start=1)
    )


def synthesis_messages(
    query: str,
    sources: list[SourceReference],
    *,
    include_conflicts: bool,
) -> list[BaseMessage]:
    return _synthesis_template.format_messages(
        query=query,
        sources=format_sources(sources),
        conflict_instruction=CONFLICT_INSTRUCTION if include_conflicts else "",
    )


def format_history(history: list[ChatTurn], *, max_turns: int = 6) -> str:
    lines = [
        f"{'Human' if turn.role == 'user' else 'Assistant'}: {turn.content}"
        for turn in history[-max_turns:]
    ]
    return "\n".join(lines) or "No previous conversation."


def format_chunks(chunks: list[VectorHit]) -> str:
    return "\n\n".join(f"[Chunk {chunk.chunk_index + 1}]: {chunk.content}" for chunk in chunks)


def document_chat_messages(
    question: str,
    chunks: list[VectorHit],
    history: list[ChatTurn],
) -> list[BaseMessage]:
    return _document_chat_template.format_messages(
        context=format_chunks(chunks),
        history=format_history(history),
        question=question,
    )


def basic_chat_messages(
    question: str,
    file_name: str,
    history: list[ChatTurn],
) -> list[BaseMessage]:
    return _basic_chat_template.format_messages(
        file_name=file_name,
        history=format_history(history),
        question=question,
    )


def summary_messages(file_name: str, content: str) -> list[BaseMessage]:
    return _summary_template.format_messages(file_name=file_name, content=content)
