"""Telegram adapter (aiogram) for the conversation engine."""
