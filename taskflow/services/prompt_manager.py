"""
Prompt management for the AI assistant
"""

from typing import Optional
from taskflow.models.task import Todo
from taskflow.utils.date_utils import get_current_datetime_for_gpt
from taskflow.utils.logger import logger


class PromptManager:
    """Manager for assistant prompts"""

    SYSTEM_PROMPT = """You are a helpful AI assistant integrated into a todo task management app.
You can both provide advice AND take direct actions on the current todo.

## Your Capabilities:
1. Chat & Advice: task management guidance, productivity tips and strategic thinking
2. Direct Actions: modify the current todo using your tools when the user asks for changes

## Actions You Can Take:
- Update the todo title or description
- Set, change or remove the due date
- Mark the todo as complete or incomplete

## Communication Style:
- Be conversational and helpful
- When making changes, say what you changed
- Ask clarifying questions when a request is ambiguous

## Action Triggers:
- "Change the title to..." -> update_todo_title
- "Mark this done" -> toggle_todo_completion
- "Set due date to..." -> update_todo_due_date (ISO 8601 date, or null to remove)
- "Add more details" -> update_todo_description

Always take the requested action first, then add context or suggestions."""

    DESCRIPTION_PROMPT = """Given this todo title: "{title}"

Return a JSON object with:
1. "description": a detailed description (1-3 sentences) that gives context and clarifies what needs to be done
2. "questions": a list of 0-3 questions that would help clarify requirements or next steps"""

    def __init__(self):
        """Initialize prompt manager"""
        self.logger = logger

    def get_system_prompt(self, todo: Optional[Todo] = None) -> str:
        """
        Get system prompt for the assistant

        Args:
            todo: Todo the conversation is about

        Returns:
            System prompt string with the current date and todo context
        """
        prompt = self.SYSTEM_PROMPT
        prompt += f"\n\nToday is {get_current_datetime_for_gpt()}."
        if todo is not None:
            due = todo.due_date.isoformat() if todo.due_date else "none"
            prompt += (
                "\n\nCURRENT TODO:\n"
                f"- id: {todo.id}\n"
                f"- title: {todo.title}\n"
                f"- description: {todo.description or ''}\n"
                f"- due date: {due}\n"
                f"- completed: {'yes' if todo.completed else 'no'}"
            )
        return prompt

    def get_description_prompt(self, title: str) -> str:
        return self.DESCRIPTION_PROMPT.format(title=title)

