import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from circulation import Library, LibraryError
from config import settings

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)


# --- Models ---
class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str
    num_of_copies: int = Field(default=0, description="Negative values create no copies")

class BookCopyModel(BaseModel):
    id: int
    book_id: int
    status: str

class BookModel(BaseModel):
    id: int
    title: str
    author: str
    isbn: str
    copies: List[BookCopyModel] = []

class BookCreatedResponse(BaseModel):
    message: str
    book_id: int

class UserCreateModel(BaseModel):
    name: str
    role: str = Field(description="student or librarian")

class UserModel(BaseModel):
    id: int
    name: str
    role: str

class UserCreatedResponse(BaseModel):
    message: str
    user_id: int

class CheckoutRequest(BaseModel):
    user_id: int
    book_id: int

class CheckoutModel(BaseModel):
    id: int
    user_id: int
    book_copy_id: int
    due_date: str
    returned: bool

class CheckoutCreatedResponse(BaseModel):
    message: str
    checkout_id: int
    due_date: str

class ReserveRequest(BaseModel):
    user_id: int
    book_id: int

class ReservationModel(BaseModel):
    id: int
    user_id: int
    book_id: int
    created_at: str
    active: bool

class ReservationCreatedResponse(BaseModel):
    message: str
    reservation_id: int

class ReturnRequest(BaseModel):
    checkout_id: int

class ReturnResponse(BaseModel):
    message: str
    fine: int

class StatsModel(BaseModel):
    total_books: int
    total_copies: int
    available_copies: int
    total_users: int
    open_checkouts: int
    active_reservations: int


def get_library(request: Request) -> Library:
    """Dependency returning the Library bound to the running app."""
    return request.app.state.library


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the API; pass a Library to bind a specific database (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Open the database on startup unless one was injected
        if getattr(app.state, "library", None) is None:
            app.state.library = Library(settings.database_file)
        logger.info(f"{settings.app_name} started ({settings.environment})")
        try:
            yield
        finally:
            app.state.library.close()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.library = library

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Error mapping ---
    @app.exception_handler(LibraryError)
    async def library_error_handler(request: Request, exc: LibraryError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def malformed_body_handler(request: Request, exc: RequestValidationError):
        # Malformed bodies are a 400 for this API, not FastAPI's default 422
        logger.warning(f"Malformed request to {request.url.path}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Malformed request body",
                "code": "invalid",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    # --- Root ---
    @app.get("/")
    def root():
        return {"message": "Library Management API"}

    @app.get("/ping")
    def ping():
        return {"message": "Library API running"}

    @app.get("/health")
    def health(lib: Library = Depends(get_library)):
        """Lightweight health check with a quick database probe."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "db": lib.db.ping(),
        }

    # --- Books ---
    @app.post("/books", response_model=BookCreatedResponse)
    def add_book(payload: BookCreateModel, lib: Library = Depends(get_library)):
        book = lib.add_book(payload.title, payload.author, payload.isbn, payload.num_of_copies)
        return BookCreatedResponse(message="Book added successfully", book_id=book.id)

    @app.get("/books", response_model=List[BookModel])
    def list_books(lib: Library = Depends(get_library)):
        return [BookModel(**b.to_dict()) for b in lib.list_books()]

    # --- Users ---
    @app.post("/users", response_model=UserCreatedResponse)
    def register_user(payload: UserCreateModel, lib: Library = Depends(get_library)):
        user = lib.register_user(payload.name, payload.role)
        return UserCreatedResponse(message="User created successfully", user_id=user.id)

    @app.get("/users", response_model=List[UserModel])
    def list_users(lib: Library = Depends(get_library)):
        return [UserModel(**u.to_dict()) for u in lib.list_users()]

    # --- Circulation ---
    @app.post("/checkout", response_model=CheckoutCreatedResponse)
    def checkout(payload: CheckoutRequest, lib: Library = Depends(get_library)):
        loan = lib.checkout(payload.user_id, payload.book_id)
        return CheckoutCreatedResponse(
            message="Book checked out successfully",
            checkout_id=loan.id,
            due_date=loan.due_date.isoformat(),
        )

    @app.get("/checkouts", response_model=List[CheckoutModel])
    def list_checkouts(lib: Library = Depends(get_library)):
        return [CheckoutModel(**c.to_dict()) for c in lib.list_checkouts()]

    @app.post("/reserve", response_model=ReservationCreatedResponse)
    def reserve(payload: ReserveRequest, lib: Library = Depends(get_library)):
        reservation = lib.reserve(payload.user_id, payload.book_id)
        return ReservationCreatedResponse(message="Book reserved successfully", reservation_id=reservation.id)

    @app.get("/reservations", response_model=List[ReservationModel])
    def list_reservations(
        book_id: Optional[int] = Query(default=None),
        active: bool = Query(default=False, description="Only waiting reservations"),
        lib: Library = Depends(get_library),
    ):
        return [ReservationModel(**r.to_dict()) for r in lib.list_reservations(book_id=book_id, active_only=active)]

    @app.post("/return", response_model=ReturnResponse)
    def return_book(payload: ReturnRequest, lib: Library = Depends(get_library)):
        result = lib.return_checkout(payload.checkout_id)
        return ReturnResponse(message="Book returned successfully", fine=result.fine)

    # --- Stats ---
    @app.get("/stats", response_model=StatsModel)
    def stats(lib: Library = Depends(get_library)):
        return StatsModel(**lib.get_statistics())

    return app


app = create_app()
