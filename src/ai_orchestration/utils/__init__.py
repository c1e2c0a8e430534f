from ai_orchestration.utils.token_counter import TokenInfo, TokenManager

__all__ = ["TokenInfo", "TokenManager"]
