"""
Agent handler backed by a LangChain chat model.
"""

from __future__ import annotations

from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from blueprint_engine.registry.agent_registry import AgentHandler, AgentInvocation


def _content_to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


def build_chat_model_handler(model: BaseChatModel) -> AgentHandler:
    """Wrap ``model`` so it can serve as an AgentDefinition handler."""

    async def handler(invocation: AgentInvocation) -> str:
        messages = [
            SystemMessage(content=invocation.system_prompt),
            HumanMessage(content=invocation.prompt),
        ]
        response = await model.ainvoke(messages)
        return _content_to_text(response.content)

    return handler
