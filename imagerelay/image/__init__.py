"""Image generation adapter package.

Scope:
    Talks to the external prediction service: submits jobs, polls them to a
    terminal state, and maps their states onto local progress records.

Non-goals:
    - No image decoding, processing, or storage.
    - No model inference.
"""
