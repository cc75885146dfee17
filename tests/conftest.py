import asyncio
import uuid

import pytest
from sqlalchemy import BigInteger, Boolean, Column, DateTime, Float, ForeignKey, Integer, LargeBinary, Numeric, String, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, relationship

from sarest import RequestHandler, SQLAlchemyClient, from_sqlalchemy


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    my_id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    email = Column(String, unique=True, nullable=False)
    posts = relationship("Post", back_populates="author")
    profile = relationship("Profile", back_populates="user", uselist=False)


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Integer, primary_key=True)
    gender = Column(String)
    user_id = Column(String, ForeignKey("users.my_id"), unique=True, nullable=False)
    user = relationship("User", back_populates="profile")


class Post(Base):
    __tablename__ = "posts"
    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    author_id = Column(String, ForeignKey("users.my_id"))
    author = relationship("User", back_populates="posts")
    published = Column(Boolean, nullable=False, default=False)
    view_count = Column(Integer, nullable=False, default=0)
    published_at = Column(DateTime)
    comments = relationship("Comment", back_populates="post")
    setting = relationship("Setting", back_populates="post", uselist=False)
    likes = relationship("PostLike", back_populates="post")


class Comment(Base):
    __tablename__ = "comments"
    id = Column(Integer, primary_key=True)
    content = Column(String, nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False)
    post = relationship("Post", back_populates="comments")


class Setting(Base):
    __tablename__ = "settings"
    id = Column(Integer, primary_key=True)
    boost = Column(Integer, nullable=False, default=0)
    post_id = Column(Integer, ForeignKey("posts.id"), unique=True, nullable=False)
    post = relationship("Post", back_populates="setting")


class PostLike(Base):
    __tablename__ = "post_likes"
    post_id = Column(Integer, ForeignKey("posts.id"), primary_key=True)
    user_id = Column(String, ForeignKey("users.my_id"), primary_key=True)
    super_like = Column(Boolean, nullable=False, default=False)
    post = relationship("Post", back_populates="likes")


class Foo(Base):
    __tablename__ = "foos"
    id = Column(Integer, primary_key=True)
    string = Column(String)
    int_value = Column(Integer)
    big_int = Column(BigInteger)
    date = Column(DateTime)
    float_value = Column(Float)
    decimal_value = Column(Numeric(12, 8))
    boolean = Column(Boolean)
    bytes_value = Column(LargeBinary)


MODELS = [User, Profile, Post, Comment, Setting, PostLike, Foo]


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(session):
    return SQLAlchemyClient(session, MODELS)


@pytest.fixture
def model_meta():
    return from_sqlalchemy(MODELS)


@pytest.fixture
def handler(model_meta):
    return RequestHandler(model_meta, "http://localhost/api", page_size=5)


@pytest.fixture
def api(handler, client):
    """
    Send a request to the handler: api("GET", "/user", query={...}, body={...})
    """

    def request(method, path, query=None, body=None):
        return asyncio.run(handler.handle_request(client, method, path, query, body))

    return request
