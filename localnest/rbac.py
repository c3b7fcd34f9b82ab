from fastapi import HTTPException, status


def require_user_type(payload: dict, allowed_types: list[str]):
    user_type = payload.get("user_type")

    if not isinstance(user_type, str) or not user_type:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User type missing in token",
        )

    allowed = {t.upper() for t in allowed_types}

    if user_type.upper() not in allowed:
        label = " or ".join(sorted(t.capitalize() for t in allowed))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"{label} access required",
        )
