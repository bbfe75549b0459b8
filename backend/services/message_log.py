from backend.database import get_db
from backend.services.stream_bridge import StoredMessage


class MessageLog:
    """Durable record of finished streamed generations.

    ``save`` is handed to the stream bridge as its persist hook, so a message
    id is committed before the ``done`` event that announces it.
    """

    async def save(self, message: StoredMessage) -> None:
        async with get_db() as db:
            await db.execute(
                """INSERT INTO generated_messages
                   (id, conversation_id, content, model, tokens_used, latency_ms)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (message.id, message.conversation_id, message.content,
                 message.model, message.tokens_used, message.latency_ms),
            )
            await db.commit()

    async def get(self, message_id: str) -> dict | None:
        async with get_db() as db:
            cursor = await db.execute(
                "SELECT * FROM generated_messages WHERE id = ?", (message_id,)
            )
            row = await cursor.fetchone()
            return dict(row) if row else None

