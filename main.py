import asyncio
import logging
import math
import os
import secrets
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import (
    ADMIN, STAFF, create_access_token, get_current_user, hash_password, is_admin,
    require_roles, require_user, verify_password,
)
from config import Settings, get_settings, missing_settings
from counters import (
    ASSIGNMENT_SUBMISSIONS, COMMENT_LIKES, POST_COMMENTS, POST_LIKES,
    CounterSync, CounterSyncError,
)
from database import (
    Store, as_utc, collection_name, get_store, now_utc, public_user,
    serialize_doc, serialize_list,
)
from mailer import Mailer, MailError, reset_code_email
from resources import Resource
from schemas import (
    FAQ, REPORT_STATUSES, Assignment, AssignmentCreate, AssignmentUpdate, Author,
    AuthorCreate, AuthorUpdate, Book, BookCreate, BookUpdate, BoardPost,
    BoardPostCreate, BoardPostUpdate, Bookmark, BookmarkPayload,
    ChangePasswordPayload, Comment, CommentCreate, CommentLike, EmailTestPayload,
    FAQCreate, FAQUpdate, GlobalSetting, Lecture, LectureCreate, LectureUpdate,
    LoginPayload, PasswordCheck, PasswordResetCode, PinPayload, PostLike, Report,
    ReportCreate, ReportStatusPayload, ResetCodeRequest, ResetWithCodePayload,
    SettingPayload, SettingValue, SignupPayload, Submission, SubmissionComment,
    SubmissionCommentCreate, SubmissionCreate, SubmissionLookup, User,
    UserAdminUpdate, UserRef,
)
from storage import (
    DEFAULT_BUCKET, DEFAULT_FOLDER, LocalStorage, UploadRejected, check_upload,
    resolve_content_type,
)

logger = logging.getLogger("edu_api")
access_logger = logging.getLogger("edu_api.access")

MISSING_FIELDS = "필수 정보가 누락되었습니다."
SERVER_ERROR = "서버 오류가 발생했습니다."
RESET_CODE_TTL = timedelta(minutes=30)
PUBLIC_SUBMISSION_FIELDS = ("id", "student_name", "file_name", "file_url", "comment", "submitted_at", "created_at")

POSTS = collection_name(BoardPost)
COMMENTS = collection_name(Comment)
SUBMISSIONS = collection_name(Submission)
SUBMISSION_COMMENTS = collection_name(SubmissionComment)
ASSIGNMENTS = collection_name(Assignment)
USERS = collection_name(User)


def seed_admin(store: Store, settings: Settings) -> Optional[str]:
    """Create the bootstrap admin account from ADMIN_EMAIL/ADMIN_PASSWORD if absent."""
    if not settings.admin_email or not settings.admin_password:
        return None
    if store.find_one(USERS, {"email": settings.admin_email}):
        return None
    admin = User(
        email=settings.admin_email,
        name="System Administrator",
        role="admin",
        password_hash=hash_password(settings.admin_password),
        email_verified=True,
    )
    doc = store.insert(USERS, admin)
    logger.info("Seeded admin account %s", settings.admin_email)
    return doc["_id"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    missing = missing_settings(settings)
    if missing:
        logger.warning("Missing configuration: %s", ", ".join(missing))
    if settings.admin_email and settings.admin_password:
        seed_admin(get_store(), settings)
    yield


app = FastAPI(title="Education Community API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------- Dependencies -------------------- #

def get_counters(store: Store = Depends(get_store), settings: Settings = Depends(get_settings)) -> CounterSync:
    return CounterSync(store, settings.consistency_mode)


def get_storage(settings: Settings = Depends(get_settings)) -> LocalStorage:
    return LocalStorage(settings.upload_dir)


def get_mailer(settings: Settings = Depends(get_settings)) -> Mailer:
    return Mailer(settings)


# -------------------- Static files -------------------- #
app.mount("/static", StaticFiles(directory=get_settings().upload_dir, check_dir=False), name="static")


# -------------------- Error handling -------------------- #

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": MISSING_FIELDS, "details": jsonable_encoder(exc.errors())}, status_code=400)


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("Store error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": SERVER_ERROR}, status_code=500)


@app.exception_handler(CounterSyncError)
async def counter_error_handler(request: Request, exc: CounterSyncError):
    logger.error("Rolled back %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": SERVER_ERROR}, status_code=500)


# -------------------- Audit Middleware -------------------- #
@app.middleware("http")
async def audit_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    # set by get_current_user on routes that resolve a caller
    role = getattr(request.state, "user_role", None) or "anonymous"
    access_logger.info(
        "%s %s -> %d (%s, %.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        role,
        (time.perf_counter() - start) * 1000,
    )
    return response


# -------------------- Helpers -------------------- #

def get_or_404(store: Store, table: str, row_id: str, detail: str) -> Dict[str, Any]:
    doc = store.get(table, row_id)
    if not doc:
        raise HTTPException(status_code=404, detail=detail)
    return doc


def present_post(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(doc)
    out["author_name"] = (doc.get("author") or {}).get("name") or "Unknown"
    return out


def present_assignment(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(doc)
    out["has_password"] = bool(out.pop("password", None))
    return out


def ensure_owner_or_admin(user: Dict[str, Any], owner_id: Optional[str], detail: str) -> None:
    if owner_id != user["_id"] and not is_admin(user):
        raise HTTPException(status_code=403, detail=detail)


def setting_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


# -------------------- Meta endpoints -------------------- #

@app.get("/")
def read_root():
    return {"message": "Education Community Backend is running"}


@app.get("/schema")
def get_schema():
    models = [
        User, PasswordResetCode, BoardPost, PostLike, Comment, CommentLike,
        Bookmark, Report, Assignment, Submission, SubmissionComment,
        GlobalSetting, Book, Lecture, Author, FAQ,
    ]
    return {m.__name__: m.model_json_schema() for m in models}


@app.get("/api/test-connection")
def test_database(store: Store = Depends(get_store), settings: Settings = Depends(get_settings)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": settings.database_name,
        "connection_status": "Not Connected",
        "collections": [],
        "missing_settings": missing_settings(settings),
    }
    try:
        collections = store.list_tables()
        response["collections"] = collections[:50]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


# -------------------- Auth endpoints -------------------- #

@app.post("/api/signup", status_code=201)
def signup(
    payload: SignupPayload,
    caller: Optional[Dict[str, Any]] = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    if payload.role not in ("student", "user") and not is_admin(caller):
        raise HTTPException(status_code=403, detail="관리자만 해당 역할의 계정을 만들 수 있습니다.")
    if store.find_one(USERS, {"email": payload.email}):
        raise HTTPException(status_code=400, detail="이미 가입된 이메일입니다.")
    user = User(
        email=payload.email,
        name=payload.name,
        role=payload.role,
        password_hash=hash_password(payload.password),
        class_level=payload.class_level,
    )
    doc = store.insert(USERS, user)
    return {"success": True, "userId": doc["_id"]}


@app.post("/api/auth/login", response_model=TokenResponse)
def login(payload: LoginPayload, store: Store = Depends(get_store), settings: Settings = Depends(get_settings)):
    user = store.find_one(USERS, {"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="이메일 또는 비밀번호가 올바르지 않습니다.")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="비활성화된 계정입니다.")
    token = create_access_token({"sub": user["_id"], "role": user.get("role")}, settings)
    return TokenResponse(access_token=token, user=serialize_doc(user))


@app.get("/api/auth-status")
def auth_status(user: Optional[Dict[str, Any]] = Depends(get_current_user)):
    if user is None:
        return {"authenticated": False}
    return {"authenticated": True, "user": serialize_doc(user)}


@app.post("/api/change-password")
def change_password(
    payload: ChangePasswordPayload,
    user: Dict[str, Any] = Depends(require_user),
    store: Store = Depends(get_store),
):
    if not verify_password(payload.current_password, user.get("password_hash")):
        raise HTTPException(status_code=400, detail="현재 비밀번호가 일치하지 않습니다.")
    store.update(USERS, {"_id": user["_id"]}, {"password_hash": hash_password(payload.new_password)})
    return {"success": True, "message": "비밀번호가 변경되었습니다."}


@app.post("/api/send-reset-code")
def send_reset_code(
    payload: ResetCodeRequest,
    store: Store = Depends(get_store),
    mailer: Mailer = Depends(get_mailer),
):
    user = store.find_one(USERS, {"email": payload.email, "name": payload.name})
    if not user:
        raise HTTPException(status_code=404, detail="일치하는 사용자를 찾을 수 없습니다.")

    code = str(100000 + secrets.randbelow(900000))
    expires_at = now_utc() + RESET_CODE_TTL
    table = collection_name(PasswordResetCode)
    store.delete(table, {"email": payload.email})
    store.insert(table, PasswordResetCode(email=payload.email, name=payload.name, code=code, expires_at=expires_at))

    try:
        mailer.send(payload.email, "비밀번호 재설정 인증번호", reset_code_email(payload.name, code))
    except MailError as e:
        logger.error("Reset code mail to %s failed: %s", payload.email, e)
        raise HTTPException(status_code=500, detail="인증번호 발송에 실패했습니다. 잠시 후 다시 시도해주세요.")
    return {"success": True, "message": "인증번호가 발송되었습니다.", "expiresAt": expires_at.isoformat()}


@app.post("/api/reset-password-with-code")
def reset_password_with_code(payload: ResetWithCodePayload, store: Store = Depends(get_store)):
    table = collection_name(PasswordResetCode)
    reset = store.find_one(table, {"email": payload.email, "code": payload.code, "used": False})
    if not reset:
        raise HTTPException(status_code=400, detail="유효하지 않은 인증번호입니다.")
    if now_utc() > as_utc(reset["expires_at"]):
        raise HTTPException(status_code=400, detail="인증번호가 만료되었습니다.")
    user = store.find_one(USERS, {"email": payload.email})
    if not user:
        raise HTTPException(status_code=404, detail="사용자를 찾을 수 없습니다.")
    store.update(USERS, {"_id": user["_id"]}, {"password_hash": hash_password(payload.new_password)})
    store.update(table, {"_id": reset["_id"]}, {"used": True})
    return {"success": True, "message": "비밀번호가 성공적으로 변경되었습니다."}


# -------------------- Admin endpoints -------------------- #

@app.get("/api/admin/users")
def list_users(role: Optional[str] = None, user=Depends(require_roles(*ADMIN)), store: Store = Depends(get_store)):
    filt = {"role": role} if role else None
    return serialize_list(store.select(USERS, filt, order=[("created_at", -1)]))


@app.patch("/api/admin/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserAdminUpdate,
    user=Depends(require_roles(*ADMIN)),
    store: Store = Depends(get_store),
):
    get_or_404(store, USERS, user_id, "사용자를 찾을 수 없습니다.")
    doc = store.update(USERS, {"_id": user_id}, payload.model_dump(exclude_unset=True))
    return serialize_doc(doc)


@app.post("/api/admin/counters/reconcile")
def reconcile_counters(user=Depends(require_roles(*ADMIN)), counters: CounterSync = Depends(get_counters)):
    return {"success": True, "updated": counters.reconcile()}


# -------------------- Board posts -------------------- #

@app.get("/api/board-posts")
def list_board_posts(type: Optional[str] = None, category: Optional[str] = None, store: Store = Depends(get_store)):
    filt: Dict[str, Any] = {}
    if type:
        filt["type"] = type
    if category and category != "all":
        filt["category"] = category
    docs = store.select(POSTS, filt, order=[("is_pinned", -1), ("created_at", -1)])
    return [present_post(d) for d in store.attach_users(docs)]


@app.post("/api/board-posts", status_code=201)
def create_board_post(payload: BoardPostCreate, user=Depends(require_user), store: Store = Depends(get_store)):
    post = BoardPost(author_id=user["_id"], **payload.model_dump())
    doc = store.insert(POSTS, post)
    doc["author"] = public_user(user)
    return present_post(doc)


@app.get("/api/board-posts/{post_id}")
def get_board_post(post_id: str, store: Store = Depends(get_store)):
    get_or_404(store, POSTS, post_id, "게시글을 찾을 수 없습니다.")
    store.increment(POSTS, post_id, "views")
    doc = store.attach_users([store.get(POSTS, post_id)])[0]
    return present_post(doc)


@app.put("/api/board-posts/{post_id}")
def update_board_post(
    post_id: str,
    payload: BoardPostUpdate,
    user=Depends(require_user),
    store: Store = Depends(get_store),
):
    post = get_or_404(store, POSTS, post_id, "게시글을 찾을 수 없습니다.")
    ensure_owner_or_admin(user, post.get("author_id"), "수정 권한이 없습니다.")
    doc = store.update(POSTS, {"_id": post_id}, payload.model_dump(exclude_unset=True))
    return present_post(store.attach_users([doc])[0])


@app.delete("/api/board-posts/{post_id}")
def delete_board_post(post_id: str, user=Depends(require_user), store: Store = Depends(get_store)):
    post = get_or_404(store, POSTS, post_id, "게시글을 찾을 수 없습니다.")
    ensure_owner_or_admin(user, post.get("author_id"), "삭제 권한이 없습니다.")
    store.delete(POSTS, {"_id": post_id})
    # rows that reference the post go with it
    comment_ids = [c["_id"] for c in store.select(COMMENTS, {"post_id": post_id})]
    if comment_ids:
        store.delete(collection_name(CommentLike), {"comment_id": {"$in": comment_ids}})
    for table in (COMMENTS, collection_name(PostLike), collection_name(Bookmark)):
        store.delete(table, {"post_id": post_id})
    return {"success": True}


@app.patch("/api/board-posts/{post_id}/pin")
def pin_board_post(
    post_id: str,
    payload: PinPayload,
    user=Depends(require_roles(*ADMIN)),
    store: Store = Depends(get_store),
):
    get_or_404(store, POSTS, post_id, "게시글을 찾을 수 없습니다.")
    doc = store.update(POSTS, {"_id": post_id}, {"is_pinned": payload.is_pinned})
    return serialize_doc(doc)


@app.post("/api/board-posts/{post_id}/like")
def toggle_post_like(
    post_id: str,
    payload: UserRef,
    store: Store = Depends(get_store),
    counters: CounterSync = Depends(get_counters),
):
    get_or_404(store, POSTS, post_id, "게시글을 찾을 수 없습니다.")
    table = collection_name(PostLike)
    existing = store.find_one(table, {"post_id": post_id, "user_id": payload.user_id})
    if existing:
        store.delete(table, {"_id": existing["_id"]})
        counters.adjust(POST_LIKES, post_id, -1, undo=lambda: store.restore(table, existing))
        is_liked = False
    else:
        like = store.insert(table, PostLike(post_id=post_id, user_id=payload.user_id))
        counters.adjust(POST_LIKES, post_id, 1, undo=lambda: store.delete(table, {"_id": like["_id"]}))
        is_liked = True
    return {"isLiked": is_liked, "likes": store.get(POSTS, post_id).get("likes", 0)}


@app.get("/api/board-posts/{post_id}/like-status")
def post_like_status(post_id: str, userId: Optional[str] = None, store: Store = Depends(get_store)):
    if not userId:
        raise HTTPException(status_code=400, detail="사용자 ID가 필요합니다.")
    like = store.find_one(collection_name(PostLike), {"post_id": post_id, "user_id": userId})
    return {"isLiked": like is not None}


# -------------------- Comments -------------------- #

@app.post("/api/comments", status_code=201)
def create_comment(
    payload: CommentCreate,
    store: Store = Depends(get_store),
    counters: CounterSync = Depends(get_counters),
):
    get_or_404(store, POSTS, payload.post_id, "게시글을 찾을 수 없습니다.")
    comment = Comment(post_id=payload.post_id, author_id=payload.user_id, content=payload.content)
    doc = store.insert(COMMENTS, comment)
    counters.adjust(POST_COMMENTS, payload.post_id, 1, undo=lambda: store.delete(COMMENTS, {"_id": doc["_id"]}))
    return {"comment": serialize_doc(store.attach_users([doc])[0])}


@app.get("/api/comments")
def list_comments(
    postId: Optional[str] = None,
    page: int = 1,
    perPage: int = 10,
    store: Store = Depends(get_store),
):
    if not postId:
        raise HTTPException(status_code=400, detail="게시글 ID가 필요합니다.")
    page = max(page, 1)
    perPage = max(perPage, 1)
    total = store.count(COMMENTS, {"post_id": postId})
    docs = store.select(
        COMMENTS, {"post_id": postId}, order=[("created_at", 1)],
        offset=(page - 1) * perPage, limit=perPage,
    )
    return {
        "comments": serialize_list(store.attach_users(docs)),
        "totalPages": math.ceil(total / perPage),
        "currentPage": page,
        "totalCount": total,
    }


@app.delete("/api/comments/{comment_id}")
def delete_comment(
    comment_id: str,
    user=Depends(require_user),
    store: Store = Depends(get_store),
    counters: CounterSync = Depends(get_counters),
):
    comment = get_or_404(store, COMMENTS, comment_id, "댓글을 찾을 수 없습니다.")
    ensure_owner_or_admin(user, comment.get("author_id"), "댓글을 삭제할 권한이 없습니다.")
    store.delete(COMMENTS, {"_id": comment_id})
    if comment.get("post_id"):
        counters.adjust(POST_COMMENTS, comment["post_id"], -1, undo=lambda: store.restore(COMMENTS, comment))
    store.delete(collection_name(CommentLike), {"comment_id": comment_id})
    return {"success": True}


@app.post("/api/comments/{comment_id}/like")
def toggle_comment_like(
    comment_id: str,
    payload: UserRef,
    store: Store = Depends(get_store),
    counters: CounterSync = Depends(get_counters),
):
    get_or_404(store, COMMENTS, comment_id, "댓글을 찾을 수 없습니다.")
    table = collection_name(CommentLike)
    existing = store.find_one(table, {"comment_id": comment_id, "user_id": payload.user_id})
    if existing:
        store.delete(table, {"_id": existing["_id"]})
        counters.adjust(COMMENT_LIKES, comment_id, -1, undo=lambda: store.restore(table, existing))
        return {"isLiked": False}
    like = store.insert(table, CommentLike(comment_id=comment_id, user_id=payload.user_id))
    counters.adjust(COMMENT_LIKES, comment_id, 1, undo=lambda: store.delete(table, {"_id": like["_id"]}))
    return {"isLiked": True}


# -------------------- Bookmarks -------------------- #

@app.post("/api/bookmarks")
def update_bookmark(payload: BookmarkPayload, store: Store = Depends(get_store)):
    table = collection_name(Bookmark)
    filt = {"post_id": payload.post_id, "user_id": payload.user_id}
    if payload.action == "add":
        if not store.find_one(table, filt):
            store.insert(table, Bookmark(**filt))
    else:
        store.delete(table, filt)
    return {"success": True, "isBookmarked": payload.action == "add"}


@app.get("/api/bookmarks/check")
def check_bookmark(postId: Optional[str] = None, userId: Optional[str] = None, store: Store = Depends(get_store)):
    if not postId or not userId:
        raise HTTPException(status_code=400, detail=MISSING_FIELDS)
    found = store.find_one(collection_name(Bookmark), {"post_id": postId, "user_id": userId})
    return {"isBookmarked": found is not None}


# -------------------- Reports -------------------- #

@app.post("/api/reports", status_code=201)
def create_report(payload: ReportCreate, store: Store = Depends(get_store)):
    table = collection_name(Report)
    get_or_404(store, POSTS, payload.post_id, "게시글을 찾을 수 없습니다.")
    if store.find_one(table, {"post_id": payload.post_id, "user_id": payload.user_id}):
        raise HTTPException(status_code=400, detail="이미 신고한 게시글입니다.")
    doc = store.insert(table, Report(post_id=payload.post_id, user_id=payload.user_id, reason=payload.reason))
    return {"success": True, "report": serialize_doc(doc)}


@app.get("/api/reports")
def list_reports(status: str = "pending", user=Depends(require_roles(*ADMIN)), store: Store = Depends(get_store)):
    if status not in REPORT_STATUSES:
        raise HTTPException(status_code=400, detail="유효하지 않은 상태입니다.")
    docs = store.select(collection_name(Report), {"status": status}, order=[("created_at", -1)])
    post_ids = list({d["post_id"] for d in docs})
    posts = {p["_id"]: p for p in store.select(POSTS, {"_id": {"$in": post_ids}})} if post_ids else {}
    store.attach_users(docs, key="user_id", as_name="reporter")
    reports = []
    for d in docs:
        post = posts.get(d["post_id"])
        d["post"] = {"id": post["_id"], "title": post.get("title"), "author_id": post.get("author_id")} if post else None
        reports.append(serialize_doc(d))
    return {"reports": reports}


@app.api_route("/api/reports/{report_id}", methods=["PUT", "PATCH"])
def update_report(
    report_id: str,
    payload: ReportStatusPayload,
    user=Depends(require_roles(*ADMIN)),
    store: Store = Depends(get_store),
):
    if payload.status not in REPORT_STATUSES:
        raise HTTPException(status_code=400, detail="유효하지 않은 상태입니다.")
    table = collection_name(Report)
    get_or_404(store, table, report_id, "신고를 찾을 수 없습니다.")
    doc = store.update(table, {"_id": report_id}, {"status": payload.status})
    logger.info("Report %s set to %s by %s", report_id, payload.status, user["_id"])
    return {"report": serialize_doc(doc)}


@app.delete("/api/reports/{report_id}")
def delete_report(report_id: str, user=Depends(require_roles(*ADMIN)), store: Store = Depends(get_store)):
    store.delete(collection_name(Report), {"_id": report_id})
    return {"success": True}


# -------------------- Assignments -------------------- #

@app.get("/api/assignments")
def list_assignments(
    class_level: Optional[str] = None,
    review_status: Optional[str] = None,
    store: Store = Depends(get_store),
):
    filt: Dict[str, Any] = {}
    if class_level:
        filt["class_level"] = class_level
    if review_status:
        filt["review_status"] = review_status
    docs = store.select(ASSIGNMENTS, filt, order=[("created_at", -1)])
    store.attach_users(docs)
    store.attach_users(docs, key="instructor_id", as_name="instructor")
    return [present_assignment(d) for d in docs]


@app.post("/api/assignments", status_code=201)
def create_assignment(
    payload: AssignmentCreate,
    user=Depends(require_roles(*STAFF)),
    store: Store = Depends(get_store),
):
    if payload.post_id:
        get_or_404(store, POSTS, payload.post_id, "게시글을 찾을 수 없습니다.")
    total_students = store.count(USERS, {"role": {"$in": ["student", "user"]}, "class_level": payload.class_level})
    assignment = Assignment(
        title=payload.title,
        content=payload.content,
        description=payload.description or payload.content,
        class_level=payload.class_level,
        due_date=payload.due_date,
        max_submissions=payload.max_submissions,
        password=hash_password(payload.password) if payload.password else None,
        author_id=user["_id"],
        instructor_id=payload.instructor_id or user["_id"],
        post_id=payload.post_id,
        total_students=total_students,
    )
    doc = store.insert(ASSIGNMENTS, assignment)
    logger.info("Assignment %s created by %s", doc["_id"], user["_id"])
    return present_assignment(doc)


@app.get("/api/assignments/{assignment_id}")
def get_assignment(assignment_id: str, store: Store = Depends(get_store)):
    get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    store.increment(ASSIGNMENTS, assignment_id, "views")
    docs = [store.get(ASSIGNMENTS, assignment_id)]
    store.attach_users(docs)
    store.attach_users(docs, key="instructor_id", as_name="instructor")
    return present_assignment(docs[0])


@app.patch("/api/assignments/{assignment_id}")
def update_assignment(
    assignment_id: str,
    payload: AssignmentUpdate,
    user=Depends(require_roles(*STAFF)),
    store: Store = Depends(get_store),
):
    get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    changes = payload.model_dump(exclude_unset=True)
    if "password" in changes:
        changes["password"] = hash_password(changes["password"]) if changes["password"] else None
    doc = store.update(ASSIGNMENTS, {"_id": assignment_id}, changes)
    return present_assignment(store.attach_users([doc])[0])


@app.delete("/api/assignments/{assignment_id}")
def delete_assignment(assignment_id: str, user=Depends(require_roles(*STAFF)), store: Store = Depends(get_store)):
    get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    store.delete(ASSIGNMENTS, {"_id": assignment_id})
    submission_ids = [s["_id"] for s in store.select(SUBMISSIONS, {"assignment_id": assignment_id})]
    if submission_ids:
        store.delete(SUBMISSION_COMMENTS, {"submission_id": {"$in": submission_ids}})
        store.delete(SUBMISSIONS, {"assignment_id": assignment_id})
    return {"message": "과제가 성공적으로 삭제되었습니다."}


@app.post("/api/assignments/{assignment_id}/check-password")
def check_assignment_password(assignment_id: str, payload: PasswordCheck, store: Store = Depends(get_store)):
    assignment = get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    hashed = assignment.get("password")
    if hashed and not verify_password(payload.password, hashed):
        raise HTTPException(status_code=401, detail="비밀번호가 일치하지 않습니다.")
    return {"success": True}


@app.patch("/api/assignments/{assignment_id}/review")
def toggle_assignment_review(
    assignment_id: str,
    user=Depends(require_roles(*STAFF)),
    store: Store = Depends(get_store),
):
    assignment = get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    if assignment.get("review_status") == "completed":
        changes = {"review_status": "pending", "reviewed_by": None, "reviewed_at": None}
    else:
        changes = {"review_status": "completed", "reviewed_by": user["_id"], "reviewed_at": now_utc()}
    doc = store.update(ASSIGNMENTS, {"_id": assignment_id}, changes)
    return present_assignment(store.attach_users([doc])[0])


@app.patch("/api/assignments/{assignment_id}/complete")
def toggle_assignment_complete(
    assignment_id: str,
    user=Depends(require_roles(*STAFF)),
    store: Store = Depends(get_store),
):
    assignment = get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    doc = store.update(ASSIGNMENTS, {"_id": assignment_id}, {"is_completed": not assignment.get("is_completed", False)})
    return present_assignment(doc)


# -------------------- Submissions -------------------- #

async def submission_payload(request: Request) -> SubmissionCreate:
    """Read a submission from either a JSON body or multipart/urlencoded form data."""
    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            data = await request.json()
        else:
            form = await request.form()
            data = {k: v for k, v in form.items() if isinstance(v, str)}
        return SubmissionCreate.model_validate(data)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail="학생 이름, 파일명, 파일 URL은 필수입니다.")


@app.get("/api/assignments/submissions/{submission_id}/comments")
def list_submission_comments(submission_id: str, store: Store = Depends(get_store)):
    docs = store.select(SUBMISSION_COMMENTS, {"submission_id": submission_id}, order=[("created_at", 1)])
    return serialize_list(docs)


@app.post("/api/assignments/submissions/{submission_id}/comments", status_code=201)
def create_submission_comment(
    submission_id: str,
    payload: SubmissionCommentCreate,
    store: Store = Depends(get_store),
):
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="댓글 내용이 필요합니다.")
    get_or_404(store, SUBMISSIONS, submission_id, "제출물을 찾을 수 없습니다.")
    comment = SubmissionComment(
        submission_id=submission_id,
        author_id=payload.author_id or None,
        author_name=payload.author_name or "Anonymous",
        content=content,
    )
    doc = store.insert(SUBMISSION_COMMENTS, comment)
    return {"success": True, "message": "댓글이 추가되었습니다.", "comment": serialize_doc(doc)}


@app.delete("/api/assignments/submissions/comments/{comment_id}")
def delete_submission_comment(comment_id: str, user=Depends(require_user), store: Store = Depends(get_store)):
    comment = get_or_404(store, SUBMISSION_COMMENTS, comment_id, "댓글을 찾을 수 없습니다.")
    ensure_owner_or_admin(user, comment.get("author_id"), "댓글을 삭제할 권한이 없습니다.")
    store.delete(SUBMISSION_COMMENTS, {"_id": comment_id})
    return {"success": True, "message": "댓글이 삭제되었습니다."}


@app.get("/api/assignments/{assignment_id}/submissions")
def list_submissions(assignment_id: str, store: Store = Depends(get_store)):
    docs = store.select(SUBMISSIONS, {"assignment_id": assignment_id}, order=[("submitted_at", -1)])
    store.attach_users(docs, key="student_id", as_name="student")
    store.attach_users(docs, key="checked_by", as_name="checked_by_user")
    return serialize_list(docs)


@app.post("/api/assignments/{assignment_id}/submissions", status_code=201)
def submit_assignment(
    assignment_id: str,
    payload: SubmissionCreate = Depends(submission_payload),
    store: Store = Depends(get_store),
    counters: CounterSync = Depends(get_counters),
):
    assignment = get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    max_submissions = assignment.get("max_submissions")
    if max_submissions and (assignment.get("current_submissions") or 0) >= max_submissions:
        raise HTTPException(status_code=400, detail="제출 인원이 마감되었습니다.")
    if payload.student_id and store.find_one(
        SUBMISSIONS, {"assignment_id": assignment_id, "student_id": payload.student_id}
    ):
        raise HTTPException(status_code=400, detail="이미 제출한 과제입니다.")

    submission = Submission(assignment_id=assignment_id, submitted_at=now_utc(), **payload.model_dump())
    doc = store.insert(SUBMISSIONS, submission)
    counters.adjust(
        ASSIGNMENT_SUBMISSIONS, assignment_id, 1,
        undo=lambda: store.delete(SUBMISSIONS, {"_id": doc["_id"]}),
    )
    return {"success": True, "submission": serialize_doc(doc)}


@app.post("/api/assignments/{assignment_id}/submissions/check")
def check_submissions(assignment_id: str, payload: SubmissionLookup, store: Store = Depends(get_store)):
    assignment = get_or_404(store, ASSIGNMENTS, assignment_id, "과제를 찾을 수 없습니다.")
    existing = store.select(
        SUBMISSIONS,
        {"assignment_id": assignment_id, "student_name": payload.student_name},
        order=[("submitted_at", -1)],
    )
    max_submissions = assignment.get("max_submissions") or 1
    return {
        "hasSubmitted": len(existing) > 0,
        "submissionCount": len(existing),
        "maxSubmissions": max_submissions,
        "canSubmitMore": len(existing) < max_submissions,
        "submissions": serialize_list(existing),
    }


@app.get("/api/assignments/{assignment_id}/submissions/public")
async def public_submissions(assignment_id: str, store: Store = Depends(get_store)):
    submissions = await run_in_threadpool(
        store.select, SUBMISSIONS, {"assignment_id": assignment_id}, [("submitted_at", -1)]
    )

    async def with_comments(submission: Dict[str, Any]) -> Dict[str, Any]:
        out = {k: v for k, v in serialize_doc(submission).items() if k in PUBLIC_SUBMISSION_FIELDS}
        try:
            comments = await run_in_threadpool(
                store.select, SUBMISSION_COMMENTS, {"submission_id": submission["_id"]}, [("created_at", 1)]
            )
        except PyMongoError:
            logger.exception("Comments lookup failed for submission %s", submission["_id"])
            comments = []
        out["comments"] = [
            {k: c[k] for k in ("id", "author_name", "content", "created_at") if k in c}
            for c in serialize_list(comments)
        ]
        return out

    # gather keeps input order, so results line up with submissions by index
    return await asyncio.gather(*(with_comments(s) for s in submissions))


@app.patch("/api/assignments/{assignment_id}/submissions/{submission_id}/check")
def toggle_submission_check(
    assignment_id: str,
    submission_id: str,
    user=Depends(require_roles(*STAFF)),
    store: Store = Depends(get_store),
):
    submission = store.find_one(SUBMISSIONS, {"_id": submission_id, "assignment_id": assignment_id})
    if not submission:
        raise HTTPException(status_code=404, detail="제출 정보를 찾을 수 없습니다.")
    checked = not submission.get("is_checked", False)
    doc = store.update(
        SUBMISSIONS,
        {"_id": submission_id},
        {
            "is_checked": checked,
            "checked_at": now_utc() if checked else None,
            "checked_by": user["_id"] if checked else None,
        },
    )
    return serialize_doc(doc)


@app.delete("/api/assignments/{assignment_id}/submissions/{submission_id}")
def delete_submission(
    assignment_id: str,
    submission_id: str,
    user=Depends(require_roles(*ADMIN)),
    store: Store = Depends(get_store),
    counters: CounterSync = Depends(get_counters),
):
    submission = store.find_one(SUBMISSIONS, {"_id": submission_id, "assignment_id": assignment_id})
    if not submission:
        raise HTTPException(status_code=404, detail="제출물을 찾을 수 없습니다.")
    store.delete(SUBMISSIONS, {"_id": submission_id})
    counters.adjust(
        ASSIGNMENT_SUBMISSIONS, assignment_id, -1,
        undo=lambda: store.restore(SUBMISSIONS, submission),
    )
    store.delete(SUBMISSION_COMMENTS, {"submission_id": submission_id})
    return {"success": True}


# -------------------- Settings -------------------- #

@app.get("/api/settings")
def get_all_settings(store: Store = Depends(get_store)):
    docs = store.select(collection_name(GlobalSetting))
    return {"success": True, "settings": {d["key"]: d.get("value", "") for d in docs}}


@app.post("/api/settings")
def save_setting(payload: SettingPayload, user=Depends(require_roles(*ADMIN)), store: Store = Depends(get_store)):
    store.upsert(collection_name(GlobalSetting), {"key": payload.key}, {"value": setting_text(payload.value)})
    return {"success": True}


@app.get("/api/settings/{key}")
def get_setting(key: str, store: Store = Depends(get_store)):
    doc = store.find_one(collection_name(GlobalSetting), {"key": key})
    if not doc:
        raise HTTPException(status_code=404, detail="Setting not found")
    return {"value": doc.get("value", "")}


@app.put("/api/settings/{key}")
def update_setting(
    key: str,
    payload: SettingValue,
    user=Depends(require_roles(*ADMIN)),
    store: Store = Depends(get_store),
):
    doc = store.update(collection_name(GlobalSetting), {"key": key}, {"value": payload.value})
    if not doc:
        raise HTTPException(status_code=404, detail="Setting not found")
    return serialize_doc(doc)


# -------------------- Content resources -------------------- #

CONTENT_RESOURCES: List[Resource] = [
    Resource("books", Book, BookCreate, BookUpdate, label="책", count_views=True, likeable=True),
    Resource(
        "lectures", Lecture, LectureCreate, LectureUpdate, label="강의",
        write_roles=STAFF, count_views=True, publish_field="is_published",
        defaults={"tags": [], "instructor": "Unknown Instructor"},
    ),
    Resource(
        "authors", Author, AuthorCreate, AuthorUpdate, label="작가",
        likeable=True, order=(("featured", -1), ("created_at", -1)),
    ),
    Resource("faqs", FAQ, FAQCreate, FAQUpdate, label="FAQ", publish_field="is_published"),
]

for resource in CONTENT_RESOURCES:
    resource.register(app)


# -------------------- File upload -------------------- #

@app.post("/api/upload", status_code=201)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    bucket: str = Form(DEFAULT_BUCKET),
    folder: str = Form(DEFAULT_FOLDER),
    user=Depends(require_user),
    storage: LocalStorage = Depends(get_storage),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="파일이 선택되지 않았습니다")
    content = await file.read()
    content_type = resolve_content_type(file.filename, file.content_type)
    try:
        check_upload(file.filename, content_type, len(content))
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    saved = await run_in_threadpool(storage.save, bucket, folder, file.filename, content)
    return {"success": True, "content_type": content_type, **saved}


# -------------------- Email -------------------- #

@app.post("/api/test-email")
def send_test_email(
    payload: EmailTestPayload,
    user=Depends(require_roles(*ADMIN)),
    mailer: Mailer = Depends(get_mailer),
):
    try:
        mailer.send(payload.to, "이메일 테스트", "<p>이메일 발송 테스트입니다.</p>")
    except MailError as e:
        logger.error("Test email to %s failed: %s", payload.to, e)
        raise HTTPException(status_code=500, detail=f"이메일 발송 실패: {e}")
    return {"success": True, "provider": mailer.provider}


# -------------------- Run -------------------- #

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
