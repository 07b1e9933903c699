"""
Identidad del llamante.

La autenticación la resuelve el gateway que precede a la API y reenvía el
miembro autenticado en cabeceras:

- `X-Member-ID`: ID del miembro (obligatorio)
- `X-Member-Role`: member | trainer | admin (por defecto member)
"""
from dataclasses import dataclass
from typing import Optional
import enum
import logging

from fastapi import Header, HTTPException, status

logger = logging.getLogger("member_identity")


class MemberRole(str, enum.Enum):
    MEMBER = "member"
    TRAINER = "trainer"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    member_id: int
    role: MemberRole = MemberRole.MEMBER

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN

    @property
    def is_staff(self) -> bool:
        """Entrenadores y administradores pueden ver las reservas de todos."""
        return self.role in (MemberRole.TRAINER, MemberRole.ADMIN)


async def get_current_actor(
    x_member_id: Optional[str] = Header(None, alias="X-Member-ID"),
    x_member_role: Optional[str] = Header(None, alias="X-Member-Role"),
) -> Actor:
    """
    Construye el Actor a partir de las cabeceras de identidad.

    Raises:
        HTTPException 401: Si falta X-Member-ID o alguna cabecera no es válida
    """
    if not x_member_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Falta la cabecera X-Member-ID"
        )
    try:
        member_id = int(x_member_id)
    except (ValueError, TypeError):
        logger.warning(f"Formato inválido para X-Member-ID: {x_member_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Member-ID inválido"
        )
    if member_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Member-ID inválido"
        )

    try:
        role = MemberRole((x_member_role or MemberRole.MEMBER.value).strip().lower())
    except ValueError:
        logger.warning(f"Rol inválido en X-Member-Role: {x_member_role}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Member-Role inválido"
        )

    return Actor(member_id=member_id, role=role)
