from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from crud import DirectoryError, UserDirectory
from dependencies import get_current_user, get_directory, require_role
from model import UserRole
from schemas import ErrorResponse, TokenData, UserCreate, UserOut, UserUpdate

router = APIRouter(
    prefix="/employees",
    tags=["employees"],
    dependencies=[Depends(get_current_user)]
)


def _error(code: int, detail: str) -> HTTPException:
    return HTTPException(status_code=code, detail=ErrorResponse(code=code, detail=detail).model_dump(mode="json"))


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_employee(
    employee: UserCreate,
    directory: UserDirectory = Depends(get_directory),
    current_user: TokenData = Depends(require_role(UserRole.hr))
):
    try:
        return directory.add_user(employee)
    except DirectoryError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, str(e))


@router.get("/", response_model=List[UserOut])
def get_employees(
    role: UserRole = None,
    directory: UserDirectory = Depends(get_directory),
    current_user: TokenData = Depends(require_role(UserRole.hr))
):
    if role:
        return directory.list_by_role(role)
    return directory.list_users()


@router.get("/managers", response_model=List[UserOut])
def get_managers(
    directory: UserDirectory = Depends(get_directory),
    current_user: TokenData = Depends(require_role(UserRole.hr))
):
    return directory.list_by_role(UserRole.manager)


@router.get("/{user_id}", response_model=UserOut)
def get_employee(
    user_id: str,
    directory: UserDirectory = Depends(get_directory),
    current_user: TokenData = Depends(get_current_user)
):
    # Employees can only view their own profile unless HR
    if current_user.role != UserRole.hr and current_user.user_id != user_id:
        raise _error(status.HTTP_403_FORBIDDEN, "You can only view your own profile")

    db_user = directory.get_user_by_id(user_id)
    if not db_user:
        raise _error(status.HTTP_404_NOT_FOUND, "Employee not found")
    return db_user


@router.put("/{user_id}", response_model=UserOut)
def update_employee(
    user_id: str,
    employee: UserUpdate,
    directory: UserDirectory = Depends(get_directory),
    current_user: TokenData = Depends(require_role(UserRole.hr))
):
    try:
        db_user = directory.update_user(user_id, employee)
    except DirectoryError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, str(e))
    if not db_user:
        raise _error(status.HTTP_404_NOT_FOUND, "Employee not found")
    return db_user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_employee(
    user_id: str,
    directory: UserDirectory = Depends(get_directory),
    current_user: TokenData = Depends(require_role(UserRole.hr))
):
    if user_id == current_user.user_id:
        raise _error(status.HTTP_400_BAD_REQUEST, "You cannot delete your own account")
    if not directory.delete_user(user_id):
        raise _error(status.HTTP_404_NOT_FOUND, "Employee not found")
