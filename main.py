import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth import (
    DEFAULT_ROLE,
    Claims,
    RoleStore,
    TokenVerifier,
    build_token_verifier,
    get_claims,
    get_role_store,
    is_admin,
    require_admin,
)
from config import Settings, get_settings
from database import (
    Database,
    connect,
    delete_result,
    get_db,
    insert_result,
    serialize,
    to_object_id,
    update_result,
)
from errors import (
    ApiError,
    BadRequest,
    Conflict,
    Forbidden,
    NotFound,
    api_error_handler,
    store_errors,
    validation_error_handler,
)
from payments import PaymentGateway, StripeGateway
from queries import (
    donation_filter,
    find_all,
    paginate,
    parse_pagination,
    payment_filter,
    pet_filter,
    request_filter,
    user_filter,
)
from schemas import (
    AdoptedStatusUpdate,
    AdoptionRequest,
    Donation,
    DonationPayment,
    DonationStatusUpdate,
    DonationUpdate,
    PaymentIntentRequest,
    Pet,
    PetUpdate,
    RequestStatusUpdate,
    RoleUpdate,
    User,
    UserCreate,
)

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE_REQUEST = "You've already submitted an adoption request for this pet."


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def changed_fields(payload) -> dict:
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise BadRequest("No updatable fields provided")
    return fields


def owner_scoped(query: dict, field: str, claims: Claims, roles: RoleStore) -> dict:
    """Restrict ``query`` to documents owned by the caller unless they are an admin."""
    if not claims.email:
        raise Forbidden("Forbidden: No email found in token")
    if not is_admin(claims, roles):
        query[field] = claims.email
    return query


def with_owner_email(doc: dict, claims: Claims) -> dict:
    if not doc.get("email"):
        if not claims.email:
            raise Forbidden("Forbidden: No email found in token")
        doc["email"] = claims.email
    return doc


# Pet Routes
@router.get("/allpets")
def list_all_pets(
    search: Optional[str] = None,
    category: Optional[str] = None,
    email: Optional[str] = None,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    with store_errors("Failed to fetch pets"):
        pets = find_all(db.pets, pet_filter(search=search, category=category, email=email))
    return [serialize(p) for p in pets]


@router.get("/pets")
def list_available_pets(
    search: Optional[str] = None,
    category: Optional[str] = None,
    email: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    pagination = parse_pagination(page, limit, settings.default_page_limit)
    query = pet_filter(search=search, category=category, email=email, available_only=True)
    with store_errors("Failed to fetch pets"):
        result = paginate(db.pets, query, pagination)
    return {
        "pets": [serialize(p) for p in result.items],
        "total": result.total,
        "page": pagination.page,
        "limit": pagination.limit,
        "hasMore": result.has_more,
    }


@router.get("/pets/{pet_id}")
def get_pet(pet_id: str, db: Database = Depends(get_db)):
    with store_errors("Failed to fetch pet"):
        pet = db.pets.find_one({"petId": pet_id})
    if not pet:
        raise NotFound("Pet not found")
    return serialize(pet)


@router.post("/pets")
def create_pet(payload: Pet, claims: Claims = Depends(get_claims), db: Database = Depends(get_db)):
    doc = payload.model_dump()
    with_owner_email(doc, claims)
    with store_errors("Failed to add pet"):
        res = db.pets.insert_one(doc)
    return insert_result(res)


@router.put("/pets/{pet_id}")
def update_pet(
    pet_id: str,
    payload: PetUpdate,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    fields = changed_fields(payload)
    with store_errors("Update failed"):
        res = db.pets.update_one({"petId": pet_id}, {"$set": fields})
    return update_result(res)


@router.patch("/pets/{id}/status")
def set_pet_adopted(
    id: str,
    payload: AdoptedStatusUpdate,
    admin: Claims = Depends(require_admin),
    db: Database = Depends(get_db),
):
    with store_errors("Failed to toggle adopted status"):
        res = db.pets.update_one({"_id": to_object_id(id)}, {"$set": {"adopted": payload.adopted}})
    return update_result(res)


@router.patch("/pets/{id}/adopt")
def adopt_pet(id: str, claims: Claims = Depends(get_claims), db: Database = Depends(get_db)):
    with store_errors("Failed to update pet status"):
        res = db.pets.update_one({"_id": to_object_id(id)}, {"$set": {"adopted": True}})
    return update_result(res)


@router.delete("/pets/{id}")
def delete_pet(
    id: str,
    claims: Claims = Depends(get_claims),
    roles: RoleStore = Depends(get_role_store),
    db: Database = Depends(get_db),
):
    query = owner_scoped({"_id": to_object_id(id)}, "email", claims, roles)
    with store_errors("Failed to delete pet"):
        res = db.pets.delete_one(query)
    if res.deleted_count == 0:
        raise NotFound("Pet not found or not authorized")
    return delete_result(res)


# Donation Campaign Routes
@router.get("/donations/infinite")
def list_donations_page(
    email: Optional[str] = None,
    status: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    pagination = parse_pagination(page, limit, settings.default_page_limit)
    with store_errors("Failed to fetch donations"):
        result = paginate(db.donations, donation_filter(email=email, status=status), pagination)
    return {
        "donations": [serialize(d) for d in result.items],
        "total": result.total,
        "hasMore": result.has_more,
    }


@router.get("/donations")
def list_donations(email: Optional[str] = None, status: Optional[str] = None, db: Database = Depends(get_db)):
    with store_errors("Failed to fetch donations"):
        donations = find_all(db.donations, donation_filter(email=email, status=status))
    return [serialize(d) for d in donations]


@router.get("/donations/{id}")
def get_donation(id: str, db: Database = Depends(get_db)):
    oid = to_object_id(id)
    with store_errors("Failed to fetch donation"):
        donation = db.donations.find_one({"_id": oid})
    if not donation:
        raise NotFound("Donation not found")
    return serialize(donation)


@router.post("/donations")
def create_donation(payload: Donation, claims: Claims = Depends(get_claims), db: Database = Depends(get_db)):
    doc = payload.model_dump()
    with_owner_email(doc, claims)
    with store_errors("Failed to create donation campaign"):
        res = db.donations.insert_one(doc)
    return insert_result(res)


@router.put("/donations/{id}")
def update_donation(
    id: str,
    payload: DonationUpdate,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    fields = changed_fields(payload)
    with store_errors("Failed to update donation"):
        res = db.donations.update_one({"_id": to_object_id(id)}, {"$set": fields})
    return update_result(res)


@router.patch("/donations/{id}")
def set_donation_status(
    id: str,
    payload: DonationStatusUpdate,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    with store_errors("Failed to update donation status"):
        res = db.donations.update_one(
            {"_id": to_object_id(id)}, {"$set": {"donationStatus": payload.donationStatus}}
        )
    return update_result(res)


@router.delete("/donations/{id}")
def delete_donation(id: str, admin: Claims = Depends(require_admin), db: Database = Depends(get_db)):
    with store_errors("Failed to delete donation"):
        res = db.donations.delete_one({"_id": to_object_id(id)})
    return delete_result(res)


# Payment Routes
@router.post("/create-payment-intent")
def create_payment_intent(payload: PaymentIntentRequest, gateway: PaymentGateway = Depends(get_payment_gateway)):
    return {"clientSecret": gateway.create_intent(payload.amount)}


@router.get("/donation-payments")
def list_donation_payments(
    email: Optional[str] = None,
    donId: Optional[str] = None,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    with store_errors("Failed to fetch donation payments"):
        payments = find_all(db.donation_payments, payment_filter(email=email, don_id=donId))
    return [serialize(p) for p in payments]


@router.post("/donation-payments", status_code=201)
def record_donation_payment(
    payload: DonationPayment,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    with store_errors("Failed to record donation payment"):
        res = db.donation_payments.insert_one(payload.model_dump())
    return {"message": "Donation payment recorded successfully", "insertedId": str(res.inserted_id)}


@router.delete("/donation-payments/{id}")
def refund_donation_payment(
    id: str,
    email: Optional[str] = None,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    payer = email or claims.email
    if not payer:
        raise BadRequest("Email is required.")
    query = {"_id": to_object_id(id), "email": payer}
    with store_errors("Failed to process refund"):
        res = db.donation_payments.delete_one(query)
    if res.deleted_count == 0:
        raise NotFound("Donation not found or not authorized")
    return {"message": "Donation refund requested successfully"}


# Adoption Request Routes
@router.get("/adoption-requests")
def list_adoption_requests(
    email: Optional[str] = None,
    status: Optional[str] = None,
    requester: Optional[str] = None,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    query = request_filter(owner_email=email, status=status, requester_email=requester)
    with store_errors("Failed to load adoption requests"):
        requests = find_all(db.requests, query)
    return [serialize(r) for r in requests]


@router.get("/adoption-requests/{pet_id}")
def list_requests_for_pet(pet_id: str, claims: Claims = Depends(get_claims), db: Database = Depends(get_db)):
    with store_errors("Failed to load adoption requests."):
        requests = find_all(db.requests, {"petId": pet_id})
    return [serialize(r) for r in requests]


@router.post("/adoption-requests", status_code=201)
def submit_adoption_request(
    payload: AdoptionRequest,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    doc = payload.model_dump()
    with store_errors("Failed to record request"):
        existing = db.requests.find_one({"petId": payload.petId, "adoptedReqByEmail": payload.adoptedReqByEmail})
        if existing:
            raise Conflict(DUPLICATE_REQUEST)
        try:
            res = db.requests.insert_one(doc)
        except DuplicateKeyError:
            # lost the race against a concurrent identical submission
            raise Conflict(DUPLICATE_REQUEST)
    return {"message": "Request recorded successfully", "insertedId": str(res.inserted_id)}


@router.patch("/adoption-requests/{id}")
def set_request_status(
    id: str,
    payload: RequestStatusUpdate,
    claims: Claims = Depends(get_claims),
    roles: RoleStore = Depends(get_role_store),
    db: Database = Depends(get_db),
):
    query = owner_scoped({"_id": to_object_id(id)}, "petOwnerEmail", claims, roles)
    with store_errors("Failed to update request"):
        res = db.requests.update_one(query, {"$set": {"reqStatus": payload.status}})
    if res.matched_count == 0:
        raise NotFound("Request not found or not authorized")
    return update_result(res)


# User Routes
@router.get("/users")
def list_users(
    email: Optional[str] = None,
    search: Optional[str] = None,
    role: Optional[str] = None,
    claims: Claims = Depends(get_claims),
    db: Database = Depends(get_db),
):
    with store_errors("Failed to fetch users."):
        users = find_all(db.users, user_filter(email=email, search=search, role=role))
    return [serialize(u) for u in users]


@router.get("/users/role")
def get_user_role(email: Optional[str] = None, roles: RoleStore = Depends(get_role_store)):
    if not email:
        raise BadRequest("Email is required.")
    return {"role": roles.get_role(email) or DEFAULT_ROLE}


@router.post("/users")
def register_user(payload: UserCreate, db: Database = Depends(get_db)):
    with store_errors("Failed to register user."):
        if db.users.find_one({"email": payload.email}):
            return {"message": "User Already Exists", "inserted": False}
        user_doc = User(**payload.model_dump()).model_dump()
        res = db.users.insert_one(user_doc)
    return insert_result(res)


@router.put("/users/role/{id}")
def update_user_role(
    id: str,
    payload: RoleUpdate,
    admin: Claims = Depends(require_admin),
    db: Database = Depends(get_db),
):
    with store_errors("Failed to update user role"):
        res = db.users.update_one({"_id": to_object_id(id)}, {"$set": {"role": payload.role}})
    return update_result(res)


# Utility endpoints
@router.get("/")
def root():
    return {"message": "Pets are waiting for you"}


@router.get("/test")
def test_database(db: Database = Depends(get_db)):
    try:
        return {"backend": "ok", "database": db.name, "collections": db.db.list_collection_names()}
    except PyMongoError as e:
        return {"backend": "ok", "database": f"error: {e}"}


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    token_verifier: Optional[TokenVerifier] = None,
    payment_gateway: Optional[PaymentGateway] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.db is None
        if owned:
            app.state.db = connect(settings)
        try:
            app.state.db.ensure_indexes()
        except PyMongoError:
            logger.exception("Could not ensure indexes on %s", app.state.db.name)
        yield
        if owned:
            app.state.db.close()

    app = FastAPI(title="Pet Adoption API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.state.settings = settings
    app.state.db = database
    app.state.token_verifier = token_verifier or build_token_verifier(settings)
    app.state.payment_gateway = payment_gateway or StripeGateway(
        settings.stripe_secret_key, settings.payment_currency
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
