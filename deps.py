"""Request dependencies: services the app factory placed on ``app.state``."""
from fastapi import Request
from pymongo.database import Database

from allocator import EntryIdAllocator
from config import Settings
from notifications import Mailer
from utils import Clock


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_allocator(request: Request) -> EntryIdAllocator:
    return request.app.state.allocator


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer
