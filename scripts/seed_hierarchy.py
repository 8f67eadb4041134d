"""
Hierarchy Seeding Script

Creates a demo Program → Folder → List → Course tree plus the default status
and priority vocabularies for local development.
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from coursetrack.models.persisted import Base, ProgramRecord
from coursetrack.repositories.hierarchy_repo import HierarchyRepository


SEED_HIERARCHY = {
    "name": "Acme Corp",
    "description": "Demo client program",
    "folders": [
        {
            "name": "Course Development",
            "lists": [
                {
                    "name": "Development",
                    "courses": [
                        {"title": "Safety Orientation", "modality": "WBT", "priority": "high", "status": "development"},
                        {"title": "Forklift Operation", "modality": "ILT/VLT", "priority": "medium", "status": "storyboard"},
                    ],
                },
                {
                    "name": "Review",
                    "courses": [
                        {"title": "Hazard Communication", "modality": "Micro Learning", "priority": "critical", "status": "outlines"},
                    ],
                },
            ],
        },
        {
            "name": "Maintenance",
            "lists": [
                {
                    "name": "Updates",
                    "courses": [
                        {"title": "Ladder Safety Refresh", "modality": "DAP", "priority": "low", "status": "completed"},
                    ],
                },
            ],
        },
    ],
}


async def seed_hierarchy():
    from coursetrack.db.config import DATABASE_URL

    engine = create_async_engine(DATABASE_URL, future=True)
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        repo = HierarchyRepository(session)
        statuses = await repo.status_vocabulary()
        priorities = await repo.priority_vocabulary()
        print(f"Vocabularies ready: {len(statuses)} statuses, {len(priorities)} priorities")

        existing = await session.execute(
            select(ProgramRecord).where(ProgramRecord.name == SEED_HIERARCHY["name"])
        )
        if existing.scalar_one_or_none():
            print(f"Program '{SEED_HIERARCHY['name']}' already exists")
            return

        program = await repo.create_program(SEED_HIERARCHY["name"], description=SEED_HIERARCHY["description"])
        course_count = 0
        for folder_data in SEED_HIERARCHY["folders"]:
            folder = await repo.create_folder(program.id, folder_data["name"])
            for list_data in folder_data["lists"]:
                course_list = await repo.create_list(folder.id, list_data["name"])
                for course_data in list_data["courses"]:
                    fields = {k: v for k, v in course_data.items() if k != "title"}
                    await repo.create_course(course_list.id, course_data["title"], **fields)
                    course_count += 1

        print(f"Successfully seeded program '{program.name}' with {course_count} courses")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_hierarchy())
