# main.py
import asyncio
from contextlib import suppress

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from config import settings
from db import async_session_maker, engine
from init_db import init_db
from handlers import (
    start_router,
    profile_router,
    developers_router,
    projects_router,
    connection_requests_router,
)
from handlers.errors import setup_error_handlers
from logging_config import setup_logging
from middlewares.db import DbSessionMiddleware
from middlewares.identity import IdentityMiddleware
from middlewares.logging_context import LoggingContextMiddleware
from realtime import change_feed
from services import ConnectionMaterializer, profile_views


async def main() -> None:
    # 1. Логирование
    logger = setup_logging()
    logger.info("Starting DevConnect bot in %s environment", settings.env)

    if not settings.bot_token:
        logger.error("BOT_TOKEN is not set, nothing to run")
        return

    # 2. Проверка БД (если тут всё упало, логируем и выходим)
    try:
        await init_db()
    except Exception:
        logger.exception("Database initialization failed")
        return

    logger.info("Database is initialized")

    # 3. Бот и диспетчер
    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = Dispatcher()

    # 3.1. Middleware
    # Сначала контекст логов (user/chat/update),
    # потом сессия БД и текущий профиль (ему нужна сессия).
    dp.update.outer_middleware(LoggingContextMiddleware())
    dp.update.outer_middleware(DbSessionMiddleware(async_session_maker))
    dp.message.middleware(IdentityMiddleware())
    dp.callback_query.middleware(IdentityMiddleware())

    # 4. Роутеры: кнопки меню (start) раньше шагов форм
    dp.include_router(start_router)
    dp.include_router(profile_router)
    dp.include_router(developers_router)
    dp.include_router(projects_router)
    dp.include_router(connection_requests_router)

    logger.info("Routers and middlewares are configured")

    # 5. Error-handlers (глобальный ловец исключений в апдейтах)
    setup_error_handlers(dp, bot)

    # 6. Материализатор связей: accepted-заявка -> две строки connections
    materializer = ConnectionMaterializer(async_session_maker, change_feed)
    materializer.start()
    logger.info("Connection materializer started")

    # 7. Стартуем поллинг
    try:
        logger.info("Starting polling")
        await dp.start_polling(bot)
    except asyncio.CancelledError:
        # Нормальное завершение (Ctrl+C и т.п.)
        logger.info("Bot polling cancelled, shutting down...")
    except Exception:
        logger.exception("Bot stopped by unexpected error")
    finally:
        # открытые карточки и подписчики change feed
        profile_views.close_all()
        materializer.stop()
        change_feed.close()

        with suppress(Exception):
            await bot.session.close()
        await engine.dispose()

        logger.info("Bot shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
