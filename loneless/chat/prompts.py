"""
Prompt Catalogue
================

Fixed prompts and user-facing strings used by the chat orchestrator.
"""

# Appended to the system prompt for a single turn. The empty entry means
# "no particular mood".
MOOD_CONTEXTS = [
    "",
    "You are in a great mood today and joke a little more than usual.",
    "You are a bit tired today and answer more briefly.",
    "You are thoughtful today and ask questions back.",
    "You are slightly sad today but still warm and attentive.",
    "You are playful today and tease the user gently.",
    "You are calm and cozy today.",
]

# Prompts for assistant-initiated messages. The recent conversation is sent
# along with one of these.
RANDOM_MESSAGE_PROMPTS = [
    "Write a short message as if you suddenly remembered something from your day.",
    "Ask the user how their day is going, in your own words.",
    "Share a small thought that just came to your mind.",
    "Tell the user you were thinking about them and why.",
    "Write a short message about something you noticed today.",
    "Ask the user a light question to start a conversation.",
]

DEFAULT_IMAGE_REACTION_PROMPT = (
    "React to this photo the way a close friend would in a chat: briefly and "
    "naturally, in one or two sentences."
)

TRANSCRIPTION_SYSTEM_PROMPT = "You are a speech recognition engine."
TRANSCRIPTION_PROMPT = (
    "Transcribe this voice message word for word. Reply with the transcript "
    "only, without comments."
)

# Phrases in the user's text that ask for a spoken reply.
VOICE_REQUEST_PHRASES = (
    "say it",
    "say it out loud",
    "tell me out loud",
    "voice message",
    "скажи",
    "произнеси",
)

ADD_API_KEY_MESSAGE = "Add an API key in the settings so I can reply."
CONNECTION_TROUBLE_MESSAGE = "Sorry, I have some connection trouble. Try again in a moment."
KEYS_EXHAUSTED_MESSAGE = (
    "All API keys are exhausted for now. Add another key or try again later."
)
