"""
Create (or promote) an admin user.

Usage:
    python scripts/create_admin.py <email> <password> [name]
"""

import asyncio
import sys

sys.path.insert(0, ".")

from app.database import async_session_maker
from app.schemas.user import UserCreate, UserRole
from app.services.auth_service import create_user, get_user_by_email


async def create_admin(email: str, password: str, name: str) -> None:
    async with async_session_maker() as db:
        user = await get_user_by_email(db, email)

        if user is None:
            user = await create_user(
                db,
                UserCreate(name=name, email=email, password=password, role=UserRole.ADMIN),
            )
            print(f'Created admin: {user.email} (#{user.user_number})')
            return

        if user.role != UserRole.ADMIN.value:
            user.role = UserRole.ADMIN.value
            await db.commit()
            print(f'Promoted {user.email} to admin')
        else:
            print(f'User {user.email} is already an admin')


if __name__ == '__main__':
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    asyncio.run(create_admin(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else 'Admin'))
