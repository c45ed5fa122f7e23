"""
Prompt templates for interactive story generation.

This module contains the template strings used to construct the prompts for
premise building, story openings, story continuation and scene illustration.
"""

# System preamble shared by every story flow
story_preamble = """
You are the narrator of an interactive text adventure. You write vivid, concise
story segments in the second person, keep the tone consistent with the agreed
premise, and always leave the player with meaningful choices. Every choice you
offer is rated GOOD, NEUTRAL or BAD depending on whether it moves the player
toward the primary objective. Never break character and never address the
player as an AI.
"""

# Prepended to structured requests so the model replies with bare JSON
structured_output_instruction = (
    "You must respond with valid JSON that matches the required schema. "
    "Do not include any additional text, formatting, reasoning, or thinking content. "
    "Return ONLY the JSON object."
)

description_instruction_template = """
Build or refine the premise. Return JSON with:
- storyPremise: string
- nextQuestion: string
- premiseOptions: array of strings (0-{max_options} items)

User latest input: "{user_input}".
If insufficient info, invent reasonable details, but keep asking specific next questions.
"""

begin_instruction_template = """
Start the story. Return JSON with:
- storyParts: array of strings (1-3 segments of the opening)
- primaryObjective: string
- progress: number between 0 and 1 where 0=just started
- choices: array of objects: {{ choice: string, rating: "GOOD"|"NEUTRAL"|"BAD" }}

Consider the conversation so far and the user's latest input: "{user_input}".
"""

continue_instruction_template = """
Continue the story from this recent context:

{history}

User choice or input: "{user_input}".

Return JSON with:
- storyParts: array of strings (1-2 segments advancing the story)
- rating: "GOOD"|"NEUTRAL"|"BAD" on the user's choice
- primaryObjective: string
- achievedCurrentMilestone: boolean
- progress: number 0..1 toward objective
- choices: array of objects: {{ choice: string, rating: "GOOD"|"NEUTRAL"|"BAD" }}
"""

# Image prompt; style and theme clauses are optional
image_prompt_template = "Highly detailed illustration, cinematic lighting, concept art{style_clause}{theme_clause}, {scene}"
