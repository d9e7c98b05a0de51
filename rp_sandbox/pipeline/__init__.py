"""Character turn pipeline.

Runs one character turn for one location:
  1. Summarize the location's history if its input-token counter has reached
     the threshold (summarize.py).
  2. Build the catch-up block from summaries + the recent message window
     (context.py).
  3. Render the character's system instruction and call the LLM with the
     makeNote / moveToLocation / labelStranger tools (character_turn.py).
  4. Reduce tool calls and text into messages + tagged mutations, then apply
     them to the world and settings in one batch (reconciler.py).

TurnController (controller.py) owns histories and token counters and
sequences all of the above, including retry-by-truncation.

Message format: {"id", "type", "sender", "text", "charId"?}
  type: user | character | exposition | narration | director | loading | summary
"""

from .character_turn import (  # noqa: F401
    TurnResult,
    build_system_instruction,
    execute_character_turn,
    process_turn_result,
)
from .context import build_catchup_block, window_messages  # noqa: F401
from .controller import TurnController, TurnInProgressError  # noqa: F401
from .reconciler import apply_turn_result  # noqa: F401
from .summarize import needs_summarization, summarize_old_messages  # noqa: F401
