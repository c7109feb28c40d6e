"""
Database Schemas for the Education / Community Platform

Each stored model below maps to a MongoDB collection named by its ``table``
attribute. The shared payload bases come first; the remaining request payload
models follow at the bottom and accept the camelCase field names the web
client sends.
"""

from datetime import datetime
from typing import ClassVar, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

Role = Literal["admin", "instructor", "teacher", "student", "user"]
PostType = Literal["free", "assignment"]
ReportStatus = Literal["pending", "reviewed", "resolved", "rejected"]
REPORT_STATUSES = ("pending", "reviewed", "resolved", "rejected")


class ClientPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PartialUpdate(ClientPayload):
    """
    Body of a partial update. Omitted fields are left alone; fields listed in
    ``non_nullable`` back required columns and may not be sent as null.
    """

    non_nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulls = [f for f in self.non_nullable if f in self.model_fields_set and getattr(self, f) is None]
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self


# Accounts
class User(BaseModel):
    table: ClassVar[str] = "users"

    email: EmailStr
    name: str
    role: Role = "student"
    password_hash: str
    is_active: bool = True
    email_verified: bool = False
    class_level: Optional[str] = None
    avatar_url: Optional[str] = None


class PasswordResetCode(BaseModel):
    table: ClassVar[str] = "password_reset_codes"

    email: str
    name: str
    code: str = Field(..., min_length=6, max_length=6)
    expires_at: datetime
    used: bool = False


# Discussion board
class BoardPost(BaseModel):
    table: ClassVar[str] = "board_posts"

    title: str
    content: str
    author_id: str
    type: PostType = "free"
    category: str = "general"
    image_url: Optional[str] = None
    is_pinned: bool = False
    likes: int = Field(0, ge=0)
    comments_count: int = Field(0, ge=0)
    views: int = Field(0, ge=0)


class PostLike(BaseModel):
    table: ClassVar[str] = "post_likes"

    post_id: str
    user_id: str


class Comment(BaseModel):
    table: ClassVar[str] = "comments"

    post_id: str
    author_id: str
    content: str
    likes: int = Field(0, ge=0)


class CommentLike(BaseModel):
    table: ClassVar[str] = "comment_likes"

    comment_id: str
    user_id: str


class Bookmark(BaseModel):
    table: ClassVar[str] = "bookmarks"

    post_id: str
    user_id: str


class Report(BaseModel):
    table: ClassVar[str] = "reports"

    post_id: str
    user_id: str
    reason: str
    status: ReportStatus = "pending"


# Assignments and submissions
class Assignment(BaseModel):
    table: ClassVar[str] = "assignments"

    title: str
    content: str
    description: Optional[str] = None
    class_level: str
    due_date: Optional[datetime] = None
    max_submissions: Optional[int] = Field(None, ge=1)
    current_submissions: int = Field(0, ge=0)
    total_students: int = 0
    views: int = 0
    password: Optional[str] = Field(None, description="bcrypt hash of the access password")
    review_status: Literal["pending", "completed"] = "pending"
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    is_completed: bool = False
    author_id: str
    instructor_id: Optional[str] = None
    post_id: Optional[str] = Field(None, description="Board post this assignment extends")


class Submission(BaseModel):
    table: ClassVar[str] = "assignment_submissions"

    assignment_id: str
    student_id: Optional[str] = None
    student_name: str
    file_name: str
    file_url: str
    comment: Optional[str] = None
    submitted_at: datetime
    is_checked: bool = False
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None
    feedback: Optional[str] = None


class SubmissionComment(BaseModel):
    table: ClassVar[str] = "submission_comments"

    submission_id: str
    author_id: Optional[str] = None
    author_name: str = "Anonymous"
    content: str


# Site content
class GlobalSetting(BaseModel):
    table: ClassVar[str] = "global_settings"

    key: str
    value: str = ""


class BookCreate(ClientPayload):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    description: Optional[str] = None
    content: Optional[str] = None
    cover_image: Optional[str] = None
    published_date: Optional[str] = None
    purchase_url: Optional[str] = None
    category: Optional[str] = None


class Book(BookCreate):
    table: ClassVar[str] = "books"

    likes: int = Field(0, ge=0)
    views: int = Field(0, ge=0)


class BookUpdate(PartialUpdate):
    non_nullable: ClassVar[Tuple[str, ...]] = ("title", "author")

    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    content: Optional[str] = None
    cover_image: Optional[str] = None
    published_date: Optional[str] = None
    purchase_url: Optional[str] = None
    category: Optional[str] = None


class LectureCreate(ClientPayload):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    content: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[int] = Field(None, ge=0, description="Length in seconds")
    category: Optional[str] = None
    instructor: Optional[str] = None
    contact_url: Optional[str] = None
    is_published: bool = True
    tags: List[str] = Field(default_factory=list)


class Lecture(LectureCreate):
    table: ClassVar[str] = "lectures"

    views: int = Field(0, ge=0)


class LectureUpdate(PartialUpdate):
    non_nullable: ClassVar[Tuple[str, ...]] = ("title", "is_published", "tags")

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    content: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    instructor: Optional[str] = None
    contact_url: Optional[str] = None
    is_published: Optional[bool] = None
    tags: Optional[List[str]] = None


class AuthorCreate(ClientPayload):
    name: str = Field(..., min_length=1)
    profession: Optional[str] = None
    experience: Optional[str] = None
    number_of_works: int = Field(0, ge=0)
    quote: Optional[str] = None
    instagram_url: Optional[str] = None
    image_url: Optional[str] = None
    featured: bool = False
    hashtags: List[str] = Field(default_factory=list)


class Author(AuthorCreate):
    table: ClassVar[str] = "authors"

    likes: int = Field(0, ge=0)


class AuthorUpdate(PartialUpdate):
    non_nullable: ClassVar[Tuple[str, ...]] = ("name", "number_of_works", "featured", "hashtags")

    name: Optional[str] = Field(None, min_length=1)
    profession: Optional[str] = None
    experience: Optional[str] = None
    number_of_works: Optional[int] = Field(None, ge=0)
    quote: Optional[str] = None
    instagram_url: Optional[str] = None
    image_url: Optional[str] = None
    featured: Optional[bool] = None
    hashtags: Optional[List[str]] = None


class FAQCreate(ClientPayload):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: str = "general"
    is_published: bool = True


class FAQ(FAQCreate):
    table: ClassVar[str] = "faqs"


class FAQUpdate(PartialUpdate):
    non_nullable: ClassVar[Tuple[str, ...]] = ("question", "answer", "category", "is_published")

    question: Optional[str] = Field(None, min_length=1)
    answer: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    is_published: Optional[bool] = None


# -------------------- Request payloads -------------------- #

class SignupPayload(ClientPayload):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    role: Role = "student"
    class_level: Optional[str] = None


class LoginPayload(ClientPayload):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ChangePasswordPayload(ClientPayload):
    current_password: str = Field(..., min_length=1, alias="currentPassword")
    new_password: str = Field(..., min_length=6, alias="newPassword")


class ResetCodeRequest(ClientPayload):
    email: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class ResetWithCodePayload(ClientPayload):
    email: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, alias="newPassword")


class BoardPostCreate(ClientPayload):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    type: PostType = "free"
    category: str = "general"
    image_url: Optional[str] = None


class BoardPostUpdate(PartialUpdate):
    non_nullable: ClassVar[Tuple[str, ...]] = ("title", "content", "category")

    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    image_url: Optional[str] = None


class PinPayload(ClientPayload):
    is_pinned: bool


class UserRef(ClientPayload):
    user_id: str = Field(..., min_length=1, alias="userId")


class CommentCreate(ClientPayload):
    post_id: str = Field(..., min_length=1, alias="postId")
    content: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1, alias="userId")


class BookmarkPayload(ClientPayload):
    post_id: str = Field(..., min_length=1, alias="postId")
    user_id: str = Field(..., min_length=1, alias="userId")
    action: Literal["add", "remove"]


class ReportCreate(ClientPayload):
    post_id: str = Field(..., min_length=1, alias="postId")
    user_id: str = Field(..., min_length=1, alias="userId")
    reason: str = Field(..., min_length=1)


class ReportStatusPayload(ClientPayload):
    status: Optional[str] = None


class AssignmentCreate(ClientPayload):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    class_level: str = Field(..., min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_submissions: Optional[int] = Field(None, ge=1)
    password: Optional[str] = None
    instructor_id: Optional[str] = None
    post_id: Optional[str] = None


class AssignmentUpdate(PartialUpdate):
    non_nullable: ClassVar[Tuple[str, ...]] = ("title", "content", "class_level", "review_status")

    title: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None
    class_level: Optional[str] = None
    due_date: Optional[datetime] = None
    max_submissions: Optional[int] = Field(None, ge=1)
    password: Optional[str] = None
    review_status: Optional[Literal["pending", "completed"]] = None


class PasswordCheck(ClientPayload):
    password: str = ""


class SubmissionCreate(ClientPayload):
    student_name: str = Field(..., min_length=1, alias="studentName")
    file_name: str = Field(..., min_length=1, alias="fileName")
    file_url: str = Field(..., min_length=1, alias="fileUrl")
    student_id: Optional[str] = Field(None, alias="studentId")
    comment: Optional[str] = None


class SubmissionLookup(ClientPayload):
    student_name: str = Field(..., min_length=1, alias="studentName")


class SubmissionCommentCreate(ClientPayload):
    content: str = ""
    author_name: Optional[str] = None
    author_id: Optional[str] = None


class SettingPayload(ClientPayload):
    key: str = Field(..., min_length=1)
    value: Optional[Union[bool, int, float, str]] = None


class SettingValue(ClientPayload):
    value: str = ""


class EmailTestPayload(ClientPayload):
    to: EmailStr


class UserAdminUpdate(PartialUpdate):
    non_nullable: ClassVar[Tuple[str, ...]] = ("name", "role", "is_active")

    name: Optional[str] = Field(None, min_length=1)
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    class_level: Optional[str] = None
    avatar_url: Optional[str] = None
