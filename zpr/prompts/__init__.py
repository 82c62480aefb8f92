from zpr.prompts.review_prompt import build_system_instruction, build_user_instruction

__all__ = ["build_system_instruction", "build_user_instruction"]
