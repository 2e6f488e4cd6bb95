import asyncio
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database.base import init_db
from database.models.user import UserRole
from services.user_service import UserService


async def make_admin(telegram_id: int, role: UserRole = UserRole.ADMIN):
    """Назначить сотруднику роль (по умолчанию администратор)"""
    await init_db()

    user = await UserService.set_role(telegram_id, role)
    if not user:
        print(f"❌ Пользователь с ID {telegram_id} не найден в базе данных")
        print("💡 Добавьте ID в ADMIN_IDS или заведите сотрудника в базе")
        return

    print(f"✅ Пользователь {user.full_name} (ID: {telegram_id}) получил роль {user.role.value}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Использование: python scripts/make_admin.py <telegram_id> [owner|admin|employee|guide]")
        sys.exit(1)
    target_role = UserRole(sys.argv[2]) if len(sys.argv) > 2 else UserRole.ADMIN
    asyncio.run(make_admin(int(sys.argv[1]), target_role))
