# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Prompt templates for the evaluator and optimizer calls."""

EVALUATOR_SYSTEM = (
    "You are an expert evaluator. Score AI-generated text precisely. "
    "Output ONLY valid JSON with no other text."
)

EVALUATOR_TEMPLATE = """\
Your task is to assess the quality of an AI-generated text based on a given \
prompt and specific evaluation criteria.

Please provide a score from 1 to 5 (where 1 is poor and 5 is excellent) and a \
brief explanation for your rating.

**Original Prompt:**
```
{prompt}
```

**Evaluation Criteria:**
```
{criteria}
```

**Generated Result to Evaluate:**
```
{result}
```

Output JSON: {{"score": N, "explanation": "..."}}
"""

OPTIMIZER_SYSTEM = (
    "You are an expert prompt engineer. Your job is to take a user-provided "
    "prompt and improve it. Output ONLY valid JSON with no other text."
)

OPTIMIZER_TEMPLATE = """\
Here is the prompt to improve:

```
{prompt}
```

Respond with the optimized prompt and an explanation of the changes you made. \
Be concise.

Output JSON: {{"optimizedPrompt": "...", "explanation": "..."}}
"""

# Seed card shown at startup.
EXAMPLE_PROMPT = (
    'Write a short, upbeat marketing slogan for a new brand of coffee called "Morning Star".'
)


def build_evaluator_prompt(prompt: str, result: str, criteria: str) -> str:
    return EVALUATOR_TEMPLATE.format(prompt=prompt, criteria=criteria, result=result)


def build_optimizer_prompt(prompt: str) -> str:
    return OPTIMIZER_TEMPLATE.format(prompt=prompt)
