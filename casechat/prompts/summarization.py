"""Prompts for tool-call and message summarization."""

SUMMARY_SYSTEM_PROMPT = """You condense chat history for an AI case-management assistant.

Reply with a single JSON object and nothing else, shaped exactly like:
{"summaryText": "<the summary>", "shortTitle": "<4-5 word title>"}

Never wrap the JSON in code fences. Never add keys."""

TOOL_SUMMARY_PROMPT = """You are an expert at summarizing tool execution results for AI conversation context.

CONVERSATIONAL CONTEXT:
{context}

TOOL REQUESTS:
{requests}

TOOL RESULTS:
{results}

Create a concise summary that:
1. Identifies what tools were executed and why (based on the conversational context)
2. Extracts the key findings that might be relevant for future conversation
3. Notes any important patterns, insights, or errors
4. Maintains context for ongoing conversation flow

Keep the summary under {max_chars} characters while preserving essential meaning.
Use "shortTitle" for a 4-5 word label of the tool activity."""

MESSAGE_SUMMARY_PROMPT = """You are an expert at summarizing message output for AI conversation context.

CONVERSATIONAL CONTEXT:
{context}

CURRENT MESSAGE:
{message}

CURRENT CHAT TITLE:
{title}

Create a short, concise summary that:
1. Maintains context for ongoing conversation flow
2. Extracts the key findings that might be relevant for future conversation
3. Notes any important patterns, insights, errors, or omissions

Put the summary in "summaryText". Put a short (4-5 word max) title describing the
conversation as a whole in "shortTitle"; it will be used as the new chat title.

Keep the summary as short as possible while preserving essential meaning."""

NO_CONTEXT = "No conversational context available."
NO_SPECIFIC_CONTEXT = "No specific conversational context found."
UNTITLED_CHAT = "Untitled Chat"
