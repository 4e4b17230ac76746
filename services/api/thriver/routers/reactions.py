"""
Reaction endpoints:
  POST /users/{id}/follow                - toggle follow
  GET  /comments/{entity_type}/{id}      - latest comments
  POST /comments/{entity_type}/{id}      - post a comment
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace

from thriver.clients.auth import ViewerContext
from thriver.clients.reactions import (
    EmptyCommentError,
    FollowState,
    SelfFollowError,
    reaction_client,
)
from thriver.dependencies import get_optional_viewer, get_viewer
from thriver.models import CommentTarget
from thriver.schemas import CommentCreate, CommentList

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("/users/{user_id}/follow", response_model=FollowState, tags=["Users"])
async def toggle_follow(user_id: str, viewer: ViewerContext = Depends(get_viewer)):
    try:
        return await reaction_client.toggle_follow(user_id, viewer)
    except SelfFollowError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/comments/{entity_type}/{entity_id}", response_model=CommentList, tags=["Comments"])
async def list_comments(
    entity_type: CommentTarget,
    entity_id: str,
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    return CommentList(comments=await reaction_client.list_comments(entity_type, entity_id, viewer))


@router.post(
    "/comments/{entity_type}/{entity_id}",
    response_model=CommentList,
    status_code=status.HTTP_201_CREATED,
    tags=["Comments"],
)
async def post_comment(
    entity_type: CommentTarget,
    entity_id: str,
    body: CommentCreate,
    viewer: ViewerContext = Depends(get_viewer),
):
    try:
        comments = await reaction_client.add_comment(entity_type, entity_id, body.body, viewer)
    except EmptyCommentError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return CommentList(comments=comments)
