from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from worksite.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
