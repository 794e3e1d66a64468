"""Text-generation provider implementations."""

from autonomous_deployer.agent.providers.base import LLMProvider
from autonomous_deployer.agent.providers.mock_provider import MockProvider
from autonomous_deployer.agent.providers.openai_provider import OpenAIProvider
from autonomous_deployer.agent.providers.resilient_llm import ResilientLLM

__all__ = ["LLMProvider", "MockProvider", "OpenAIProvider", "ResilientLLM"]
