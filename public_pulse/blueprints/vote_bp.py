"""
Vote blueprint.

Endpoints:
    POST /api/v1/votes                    — type + exactly one of issue_id / comment_id
    POST /api/v1/votes/issue/<id>         — shortcut, body {type}
    POST /api/v1/votes/comment/<id>       — shortcut, body {type}
    GET  /api/v1/votes?issue_id=|comment_id= — {upvotes, downvotes, user_vote}

Sending the same type twice removes the vote (response ``vote: null``).
"""

from flask import Blueprint, jsonify, request

from public_pulse.blueprints import json_body
from public_pulse.middleware.permission_required import optional_auth, require_user
from public_pulse.services import vote_service

vote_bp = Blueprint("vote", __name__, url_prefix="/api/v1")


def _vote_response(vote, issue_id=None, comment_id=None, user_id=None):
    summary = vote_service.vote_summary(issue_id=issue_id, comment_id=comment_id,
                                        user_id=user_id)
    message = "Vote removed" if vote is None else "Vote recorded"
    return jsonify({
        "message": message,
        "vote": vote.to_dict() if vote is not None else None,
        "votes": summary,
    })


@vote_bp.route("/votes", methods=["POST"])
@require_user
def cast_vote(ctx):
    data = json_body()
    issue_id, comment_id = data.get("issue_id"), data.get("comment_id")
    vote = vote_service.cast_vote(ctx, data.get("type"),
                                  issue_id=issue_id, comment_id=comment_id)
    return _vote_response(vote, issue_id, comment_id, ctx.user_id)


@vote_bp.route("/votes/issue/<issue_id>", methods=["POST"])
@require_user
def vote_issue(ctx, issue_id):
    vote = vote_service.cast_vote(ctx, json_body().get("type"), issue_id=issue_id)
    return _vote_response(vote, issue_id=issue_id, user_id=ctx.user_id)


@vote_bp.route("/votes/comment/<comment_id>", methods=["POST"])
@require_user
def vote_comment(ctx, comment_id):
    vote = vote_service.cast_vote(ctx, json_body().get("type"), comment_id=comment_id)
    return _vote_response(vote, comment_id=comment_id, user_id=ctx.user_id)


@vote_bp.route("/votes", methods=["GET"])
@optional_auth
def get_votes(ctx):
    votes = vote_service.vote_summary(
        issue_id=request.args.get("issue_id"),
        comment_id=request.args.get("comment_id"),
        user_id=ctx.user_id,
    )
    return jsonify({"votes": votes})
