from backend.config import get_settings
from backend.services.message_log import MessageLog


def get_message_log() -> MessageLog:
    return MessageLog()


def get_llm_router():
    from backend.services.llm_router import LLMRouter
    from backend.services.provider_registry import get_registry
    return LLMRouter(get_registry())


def get_stream_bridge():
    from backend.services.stream_bridge import StreamBridge
    return StreamBridge(
        persist=get_message_log().save,
        queue_size=get_settings().stream_queue_size,
    )
