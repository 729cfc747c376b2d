import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from workdesk.api.auth import verify_api_key
from workdesk.api.schemas import (
    CustomerCreate,
    CustomerResponse,
    ParentCompanyCreate,
    ParentCompanyResponse,
    UserCreate,
    UserResponse,
)
from workdesk.db import repository
from workdesk.db.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])


def _user_response(db: Session, user) -> UserResponse:
    return UserResponse.model_validate(user).model_copy(
        update={
            "roles": repository.get_user_roles(db, user.id),
            "departments": repository.get_user_departments(db, user.id),
        }
    )


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(body: UserCreate, db: Session = Depends(get_db)):
    data = body.model_dump(mode="json")
    user = repository.create_user(db, **data)
    logger.info("Created user %s (%s)", user.id, user.email)
    return _user_response(db, user)


@router.get("/users", response_model=list[UserResponse])
def list_users(include_disabled: bool = False, db: Session = Depends(get_db)):
    return [
        _user_response(db, u)
        for u in repository.list_users(db, include_disabled=include_disabled)
    ]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: int, db: Session = Depends(get_db)):
    user = repository.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return _user_response(db, user)


@router.post("/users/{user_id}/disable", response_model=UserResponse)
def disable_user(user_id: int, db: Session = Depends(get_db)):
    user = repository.disable_user(db, user_id)
    logger.info("Disabled user %s", user_id)
    return _user_response(db, user)


@router.post("/customers", response_model=CustomerResponse, status_code=201)
def create_customer(body: CustomerCreate, db: Session = Depends(get_db)):
    return repository.create_customer(db, **body.model_dump(mode="json"))


@router.get("/customers", response_model=list[CustomerResponse])
def list_customers(
    include_disabled: bool = False,
    parent_company_id: int | None = None,
    db: Session = Depends(get_db),
):
    return repository.list_customers(
        db, include_disabled=include_disabled, parent_company_id=parent_company_id
    )


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    customer = repository.get_customer(db, customer_id)
    if not customer:
        raise HTTPException(
            status_code=404, detail=f"Customer {customer_id} not found"
        )
    return customer


@router.post("/customers/{customer_id}/disable", response_model=CustomerResponse)
def disable_customer(customer_id: int, db: Session = Depends(get_db)):
    return repository.disable_customer(db, customer_id)


@router.post("/parent-companies", response_model=ParentCompanyResponse, status_code=201)
def create_parent_company(body: ParentCompanyCreate, db: Session = Depends(get_db)):
    company = repository.create_parent_company(db, **body.model_dump(mode="json"))
    logger.info("Created parent company %s", company.id)
    return company


@router.get("/parent-companies", response_model=list[ParentCompanyResponse])
def list_parent_companies(db: Session = Depends(get_db)):
    return repository.list_parent_companies(db)


@router.get("/parent-companies/{company_id}", response_model=ParentCompanyResponse)
def get_parent_company(company_id: int, db: Session = Depends(get_db)):
    company = repository.get_parent_company(db, company_id)
    if not company:
        raise HTTPException(
            status_code=404, detail=f"Parent company {company_id} not found"
        )
    return company
