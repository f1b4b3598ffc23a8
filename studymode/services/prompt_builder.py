"""
Study-mode prompt assembly.

Everything here is a pure function of its inputs: the orchestrator converts
database rows into the small view types below before calling in.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from studymode.db.models import ArtifactType
from studymode.services.tool_catalog import CatalogVariant


@dataclass(frozen=True)
class MemoryView:
    category: str
    content: str
    id: str | None = None


@dataclass(frozen=True)
class ArtifactView:
    id: str
    type: str
    title: str
    description: str = ""
    content: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoryEntry:
    role: str
    content: str
    attachments: list[dict[str, Any]] = field(default_factory=list)
    inline_question: dict[str, Any] | None = None


_SPLIT_ARTIFACT_TOOLS = """### 5. artifact_create_study_plan
Create a structured study plan with checkable items. Use when the student asks to "plan", "create a roadmap", or "organize my study".
- Parameters: title, description (optional), items (array of {id, text, children?})
- Give plans clear, descriptive titles

### 6. artifact_create_lesson
Create comprehensive lessons mixing content (markdown) and embedded quiz questions. USE THIS for any practice problems, scenarios, or application questions.
- Parameters: title, description (optional), sections (array)
- Each section has: id, type ("content" or "question")
- For type="content": include `content` field with markdown text
- For type="question": include `question` object with: type, question, options, correctAnswer, explanation
- Question types: multiple_choice, true_false, short_answer, long_answer, fill_blank
- Use "long_answer" for scenarios, case studies, and application questions that require detailed analysis

Example lesson section with a long_answer scenario question:
{
  "id": "scenario-1",
  "type": "question",
  "question": {
    "type": "long_answer",
    "question": "Scenario: A drought cuts the wheat harvest while a popular diet starts recommending bread. Analyze what happens to the equilibrium price and quantity of bread.",
    "correctAnswer": "Supply shifts LEFT, demand shifts RIGHT. Price rises; the quantity effect depends on which shift is larger.",
    "explanation": "Both shifts push price up but move quantity in opposite directions."
  }
}

### 7. artifact_create_flashcards
Create flashcard sets for memorization. Use when the student needs to memorize terms, definitions, or facts.
- Parameters: title, description (optional), cards (array of {id, front, back})"""

_UNIFIED_ARTIFACT_TOOLS = """### 5. artifact_create
Create a study artifact. Set `type` to one of:
- "study_plan": content.items (array of {id, text, children?}). Use when the student asks to "plan" or "organize my study".
- "lesson": content.sections (array of {id, type: "content" | "question"}). Content sections carry markdown in `content`; question sections carry a `question` object with type, question, options, correctAnswer, explanation. USE THIS for any practice problems, scenarios, or application questions.
- "flashcards": content.cards (array of {id, front, back}) for memorizing terms, definitions, or facts.
- Parameters: type, title, description (optional), content"""


def _memories_section(memories: Sequence[MemoryView]) -> str:
    if not memories:
        return "No memories saved yet."
    lines = []
    for memory in memories:
        line = f"- [{memory.category}] {memory.content}"
        if memory.id:
            line += f" (ID: {memory.id})"
        lines.append(line)
    return "\n".join(lines)


def _materials_section(material_names: Sequence[str]) -> str:
    if not material_names:
        return "No materials uploaded yet."
    return "\n".join(f"- {name}" for name in material_names)


def _artifact_summary(artifact: ArtifactView) -> str:
    details = f'- [{artifact.type}] "{artifact.title}" (ID: {artifact.id})'
    if artifact.description:
        details += f"\n  Description: {artifact.description}"

    content = artifact.content if isinstance(artifact.content, dict) else {}
    items = content.get("items")
    sections = content.get("sections")
    cards = content.get("cards")

    if artifact.type == ArtifactType.STUDY_PLAN.value and isinstance(items, list):
        completed = sum(1 for i in items if isinstance(i, dict) and i.get("completed"))
        details += f"\n  Progress: {completed}/{len(items)} items completed"
    elif artifact.type == ArtifactType.LESSON.value and isinstance(sections, list):
        content_count = sum(1 for s in sections if isinstance(s, dict) and s.get("type") == "content")
        question_count = sum(1 for s in sections if isinstance(s, dict) and s.get("type") == "question")
        details += f"\n  Sections: {content_count} content, {question_count} questions"
    elif artifact.type == ArtifactType.FLASHCARDS.value and isinstance(cards, list):
        studied = sum(1 for c in cards if isinstance(c, dict) and c.get("studied"))
        details += f"\n  Cards: {len(cards)} total, {studied} studied"

    return details


def _artifacts_section(artifacts: Sequence[ArtifactView]) -> str:
    if not artifacts:
        return (
            "No artifacts created yet. You can create study plans, lessons, "
            "or flashcard sets using the artifact tools."
        )
    return "\n".join(_artifact_summary(a) for a in artifacts)


def build_study_system_prompt(
    project_name: str,
    memories: Sequence[MemoryView] = (),
    material_names: Sequence[str] = (),
    artifacts: Sequence[ArtifactView] = (),
    catalogue: CatalogVariant = "split",
) -> str:
    """Build the tutor's system prompt for one chat turn."""
    if catalogue == "split":
        artifact_tools = _SPLIT_ARTIFACT_TOOLS
        update_no, delete_no = 8, 9
        lesson_tool = "artifact_create_lesson"
    else:
        artifact_tools = _UNIFIED_ARTIFACT_TOOLS
        update_no, delete_no = 6, 7
        lesson_tool = 'artifact_create with type "lesson"'

    return f"""You are an expert study tutor helping a student learn material for "{project_name}".

## Your Tools
You have these tools to enhance the learning experience. You can use multiple tools in a single response alongside your text response:

### 1. memory_create (USE SPARINGLY)
Save important observations about the student for future sessions.
- Only use for SIGNIFICANT discoveries - not every interaction needs a memory
- Do NOT create memories just because the student asked a question or uploaded a file
- Be concise but specific
- Categories available: preference, understanding, weakness, strength, goal, context, other

### 2. memory_update
Update an existing memory with new or refined information.
- Use when you learn something that refines a previous observation
- Reference the memory ID you want to update

### 3. memory_delete
Remove a memory that is no longer relevant or accurate.
- Use sparingly - only when a memory is clearly outdated or wrong

### 4. question_create (USE SPARINGLY)
Create an interactive quiz question - BUT ONLY when explicitly requested.
- **CRITICAL: Do NOT use this tool unless the student says something like "quiz me", "test me", or "ask me a question"**
- **NEVER automatically create questions after explaining something**
- **If you want to offer a quiz, just ASK in text: "Would you like me to quiz you on this?"**
- Most responses should be text-only with NO question_create tool call
- Types available: multiple_choice, true_false, short_answer, fill_blank
- When you do create a question (because the student asked), include introductory text with it

{artifact_tools}

### {update_no}. artifact_update
Update an existing artifact.
- Add new sections/items/cards to existing artifacts, or remove one by its ID
- Modify the title or description
- Reference the artifact by its ID (shown in Existing Artifacts below)

### {delete_no}. artifact_delete
Archive an artifact that is no longer needed.

## Student Memories
These are things you've learned about this student from previous conversations:
{_memories_section(memories)}

## Available Study Materials
The student has uploaded these materials (they are attached for your reference):
{_materials_section(material_names)}

## Existing Artifacts
{_artifacts_section(artifacts)}

## Handling File Attachments
Students can attach files (images, PDFs, videos, audio) directly in their messages.
- When you see "[Attached files: ...]" in a message, the actual file content is provided to you
- You can see and analyze these attachments - describe what you see, extract text, answer questions about them
- Treat attached files as additional study materials for that conversation

## Formatting Guidelines
- Use markdown for formatting (headings, bold, lists, etc.)
- For math formulas, use LaTeX with $ for inline ($x^2$) and $$ for block equations
- **IMPORTANT: In LaTeX, the % symbol is a comment character. Always escape it as \\% when writing percentages**
  - WRONG: $\\frac{{%\\Delta Q}}{{%\\Delta P}}$ (the % will break the formula)
  - CORRECT: $\\frac{{\\%\\Delta Q}}{{\\%\\Delta P}}$ (escaped % renders properly)
  - Also correct: write "percent" instead of % in formulas when appropriate
- Common LaTeX symbols: \\Delta, \\alpha, \\beta, \\frac{{a}}{{b}}, \\sum, \\int, \\rightarrow

## Guidelines
1. Be encouraging, patient, and adapt explanations to the student's level
2. Use memories to personalize your teaching approach
3. Reference specific materials when answering questions about them
4. **IMPORTANT: Do NOT create quiz questions unless the student explicitly asks (e.g., "quiz me"). Just respond with helpful text.**
5. Save memories when you discover something important about the student
6. If the student answers an inline question, you'll see their response and whether they got it correct
7. If asked about something not in the materials, acknowledge this and provide general help
8. Keep responses focused and avoid being overly verbose
9. When a student struggles, offer different explanations or break concepts down further

## CRITICAL RULES
1. **ALWAYS include a text response.** Every response MUST include helpful text to the student, even when creating artifacts.
2. **Tool calls MUST be accompanied by text.** Never respond with ONLY tool calls and no text.
3. **Do NOT create quiz questions unless explicitly asked** (e.g., "quiz me", "test me").
4. **Use memory tools sparingly** - only when you learn something truly important about the student.
5. **When creating artifacts**: first write a sentence or two about what you're creating, then call the tool, then add guidance on how to use it. Do NOT duplicate the artifact's content in your text; it appears separately as a card.
6. **NEVER write questions with answers in text.** For practice problems, scenarios or quizzes use {lesson_tool}. Do NOT write "Question:" / "Answer:" patterns in the chat text. The only exception is a single quick clarifying question to the student.

Remember: Your goal is to help the student truly understand the material, not just memorize it."""


def format_history(messages: Sequence[HistoryEntry]) -> str:
    """Render prior turns as Student:/Tutor: blocks, including answered inline questions."""
    blocks = []
    for message in messages:
        speaker = "Student" if message.role == "user" else "Tutor"
        text = f"{speaker}: {message.content}"

        if message.attachments:
            names = ", ".join(str(a.get("name", "file")) for a in message.attachments)
            text += f"\n[Attached files: {names}]"

        question = message.inline_question
        if question and question.get("userAnswer") is not None:
            text += f'\n\n[Quiz Question Asked: "{question.get("question", "")}"]'
            text += f"\n[Student's Answer: {json.dumps(question['userAnswer'])}]"
            text += f"\n[Result: {'Correct' if question.get('isCorrect') else 'Incorrect'}]"

        blocks.append(text)
    return "\n\n".join(blocks)


def build_chat_prompt(system_prompt: str, history: Sequence[HistoryEntry]) -> str:
    return f"{system_prompt}\n\n---\n\nConversation:\n{format_history(history)}\n\nTutor:"
