from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from bloodbridge.config import DATABASE_URL
from bloodbridge.database.models import Base

engine = create_async_engine(DATABASE_URL, echo=False)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
