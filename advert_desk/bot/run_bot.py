# bot/run_bot.py
import asyncio
import logging

from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import TelegramAPIServer
from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from advert_desk.config import Settings
from advert_desk.db.database import DataBase
from advert_desk.db.schemas.teacher import TeacherRead
from advert_desk.i18n import Localizer
from advert_desk.bot.middlewares.device import DeviceMiddleware
from advert_desk.bot.middlewares.whitelist import WhitelistMiddleware
from advert_desk.bot.routers.core import router as CoreRouter
from advert_desk.bot.routers.intake import router as IntakeRouter
from advert_desk.bot.routers.moderation import router as ModerationRouter
from advert_desk.bot.services.auth import AuthService
from advert_desk.bot.services.backend import BackendReadiness
from advert_desk.bot.services.flow_registry import flow_registry

logger = logging.getLogger(__name__)


def setup_dispatcher(dp: Dispatcher) -> None:
    dp.update.outer_middleware(DeviceMiddleware())
    dp.update.outer_middleware(WhitelistMiddleware())

def setup_routers(dp: Dispatcher) -> None:
    dp.include_router(CoreRouter)
    dp.include_router(IntakeRouter)
    dp.include_router(ModerationRouter)

def bind_reset_sender(bot: Bot) -> None:
    localizer = Localizer()

    async def send_reset_code(teacher: TeacherRead, token: str) -> None:
        ttl = Settings().reset_token_ttl_minutes
        await bot.send_message(teacher.tg_chat_id, localizer.get("auth.reset_code", token=token, minutes=ttl))

    AuthService().bind_reset_sender(send_reset_code)

async def main() -> None:
    settings = Settings()
    logging.basicConfig(level=settings.log_level)
    BOT_TOKEN = settings.bot_token

    if not BOT_TOKEN:
        raise RuntimeError("Bot token is not set.")

    session = None
    if settings.bot_api_server:
        session = AiohttpSession(api=TelegramAPIServer.from_base(settings.bot_api_server, is_local=True))
    bot = Bot(
        BOT_TOKEN,
        session=session,
        default=DefaultBotProperties(
            parse_mode=ParseMode.HTML,
        ),
    )

    dp = Dispatcher()
    setup_dispatcher(dp)
    setup_routers(dp)

    flow_registry.bind_bot(bot)
    bind_reset_sender(bot)

    await BackendReadiness().initialise(DataBase().create_all)
    if not BackendReadiness().is_ready:
        logger.warning("Starting without the submission store; submissions are kept on devices only")

    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await flow_registry.close_all()
        await DataBase().dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
