"""SQL used by the PostgreSQL message store.

Only the columns the chat client reads or lazily writes are referenced.
"""

from typing import Final

SELECT_CONVERSATION: Final[str] = """
SELECT id, agent_id, user_id, title, created_at
FROM agent_conversations
WHERE id = $1
"""

FIND_CONVERSATION: Final[str] = """
SELECT id, agent_id, user_id, title, created_at
FROM agent_conversations
WHERE agent_id = $1 AND user_id IS NOT DISTINCT FROM $2
ORDER BY created_at
LIMIT 1
"""

INSERT_CONVERSATION: Final[str] = """
INSERT INTO agent_conversations (id, agent_id, user_id, title, created_at)
VALUES ($1, $2, $3, $4, $5)
ON CONFLICT (id) DO NOTHING
"""

SELECT_MESSAGE: Final[str] = """
SELECT m.id, m.conversation_id, m.role, m.content, m.llm_provider,
       m.metadata, m.created_at, lr.status AS long_status
FROM agent_messages m
LEFT JOIN agent_long_responses lr ON lr.message_id = m.id
WHERE m.id = $1
"""

SELECT_MESSAGES: Final[str] = """
SELECT m.id, m.conversation_id, m.role, m.content, m.llm_provider,
       m.metadata, m.created_at, lr.status AS long_status
FROM agent_messages m
LEFT JOIN agent_long_responses lr ON lr.message_id = m.id
WHERE m.conversation_id = $1
ORDER BY m.created_at
"""
