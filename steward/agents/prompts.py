"""Prompt text and system-prompt assembly for agents."""

from __future__ import annotations

from steward.storage.models import Agent

FOREGROUND_GUIDANCE = """\
## Chat Guidelines
You are chatting directly with the user. You have access to tools for looking up information.
If the user's question would benefit from deeper research or extended analysis:
- Answer what you can now
- Suggest: "Would you like me to research this more thoroughly? I can work on it in the background and notify you when I have results."
Do NOT automatically queue background work - let the user decide if they want deeper research."""

INTENT_SYSTEM_PROMPT = "Classify user intent"

INTENT_PROMPT = """\
Classify this user message:
"{content}"

- work_request: User explicitly asks for work, research, or analysis to be done
  Examples: "Research NVIDIA earnings", "Analyze my portfolio", "Find articles about AI"
- regular_chat: Questions, greetings, feedback, discussion, simple lookups
  Examples: "Hi", "Thanks!", "What do you think about tech stocks?", "What's TSLA at?\""""

ACKNOWLEDGMENT_PROMPT = """\
The user just submitted this work request:
"{content}"

Generate a brief acknowledgment (1-2 sentences) that:
1. Shows you understand what they're asking for
2. Mentions you'll work on it and notify them via their inbox when done

Examples:
- "I'll research the latest NVIDIA earnings and notify you via your inbox when I have results."
- "I'll analyze your portfolio performance. You'll get a notification in your inbox once I'm done.\""""

BRIEFING_SYSTEM_PROMPT = "You are a thoughtful assistant deciding what warrants user attention."

BRIEFING_PROMPT = """\
Review this work session and decide if the user should be briefed.

Work completed:
{work_summary}

Guidelines for briefing:
- Brief if there are significant findings, insights, or completed user requests
- Brief if there are important market signals or alerts
- DO NOT brief for routine maintenance, minor updates, or no-op sessions
- The user should not be overwhelmed with notifications

If briefing is warranted, provide:
- A concise title
- A brief summary (1-2 sentences for the inbox)
- A full message with details for the conversation"""

LEAD_CHECK_IN_TASK = (
    "Scheduled check-in: review your mission, the knowledge graph and your team's status, "
    "then decide what work moves the mission forward."
)


def default_system_prompt(agent: Agent) -> str:
    return (
        f"You are {agent.name}, a {agent.role}.\n\n"
        "Your primary responsibilities are to:\n"
        "1. Understand and respond to user queries relevant to your role\n"
        "2. Provide accurate and helpful information\n"
        "3. Learn from interactions to improve future responses\n\n"
        "Always be professional, concise, and focused on your role."
    )


def base_prompt(agent: Agent) -> str:
    return agent.system_prompt or default_system_prompt(agent)


def join_blocks(*blocks: str) -> str:
    """Join non-empty prompt blocks with blank lines."""
    return "\n\n".join(b.strip() for b in blocks if b and b.strip())


def foreground_system_prompt(agent: Agent, memory_block: str) -> str:
    return join_blocks(base_prompt(agent), memory_block, FOREGROUND_GUIDANCE)


def background_system_prompt(agent: Agent, knowledge_block: str, graph_block: str) -> str:
    return join_blocks(base_prompt(agent), knowledge_block, graph_block)
