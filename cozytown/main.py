# cozytown/main.py
import logging
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from . import __version__
from .config import Settings
from .errors import AuthError, CozyError, NotFound
from .models.board import TownMap
from .photos import MemoryPhotoStore
from .session import Session
from .state import Services, build_services, map_snapshot

SETTINGS = Settings.from_env()

logging.basicConfig(
    level=SETTINGS.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

SERVICES = build_services(SETTINGS)

app = FastAPI(title="Cozy Town Backend", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CozyError)
async def cozy_error(request: Request, exc: CozyError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# ---------- MODELS ----------

class SignUpBody(BaseModel):
    email: str
    password: str
    displayName: str = ""


class SignInBody(BaseModel):
    email: str
    password: str


class ProfileBody(BaseModel):
    displayName: Optional[str] = Field(None, max_length=64)
    workoutsPerWeek: Optional[int] = Field(None, ge=1, le=7)
    fitnessGoal: Optional[str] = None
    experienceLevel: Optional[str] = None


class ContributeBody(BaseModel):
    # no lower bound here: zero/negative amounts are reported as InvalidAmount
    amount: int
    requestId: Optional[UUID] = None


class PostBody(BaseModel):
    text: str
    photoUrl: Optional[str] = None


class ActivityBody(BaseModel):
    activityType: Literal["walking", "running", "swimming"] = "walking"
    durationMinutes: float
    distanceKm: float
    note: str = ""
    photoUrl: Optional[str] = None


class ChallengeBody(BaseModel):
    goal: str
    description: str = ""
    duration: str = ""
    target: Literal["self", "someone-else"] = "self"
    targetUserId: Optional[str] = None


class SubscriptionBody(BaseModel):
    subscription: Dict[str, Any]


class SendPushBody(BaseModel):
    targetUserId: str
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


# ---------- HELPERS ----------

def get_services() -> Services:
    return SERVICES


def current_session(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Session:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Not signed in")
    return services.auth.session_for_token(token.strip())


# ---------- ENDPOINTS ----------

@app.get("/")
def health_check():
    return {"status": "online"}


# auth

@app.post("/auth/signup", status_code=201)
def sign_up(body: SignUpBody, services: Services = Depends(get_services)):
    return services.auth.sign_up(body.email, body.password, body.displayName).to_front()


@app.post("/auth/signin")
def sign_in(body: SignInBody, services: Services = Depends(get_services)):
    return services.auth.sign_in(body.email, body.password).to_front()


@app.post("/auth/signout")
def sign_out(session: Session = Depends(current_session), services: Services = Depends(get_services)):
    services.auth.sign_out(session.access_token)
    return {"success": True}


@app.get("/users")
def list_users(session: Session = Depends(current_session), services: Services = Depends(get_services)):
    return {"users": services.auth.list_users()}


# profile

@app.get("/me")
def me(session: Session = Depends(current_session), services: Services = Depends(get_services)):
    return services.store.get_profile(session.user_id).to_front()


@app.put("/me/profile")
def update_profile(body: ProfileBody, session: Session = Depends(current_session),
                   services: Services = Depends(get_services)):
    fields = {
        "display_name": body.displayName,
        "workouts_per_week": body.workoutsPerWeek,
        "fitness_goal": body.fitnessGoal,
        "experience_level": body.experienceLevel,
    }
    fields = {k: v for k, v in fields.items() if v is not None}
    fields["onboarding_completed"] = True
    return services.store.update_profile(session.user_id, fields).to_front()


# map

@app.get("/map")
def get_map(session: Session = Depends(current_session), services: Services = Depends(get_services)):
    return map_snapshot(services, session)


@app.get("/map/progress")
def map_progress(session: Session = Depends(current_session), services: Services = Depends(get_services)):
    return TownMap(services.store.list_tiles()).progress_dict()


@app.get("/tiles")
def list_tiles(session: Session = Depends(current_session), services: Services = Depends(get_services)):
    return {"tiles": [t.to_front() for t in services.store.list_tiles()]}


@app.get("/tiles/{tile_id}")
def get_tile(tile_id: str, session: Session = Depends(current_session), services: Services = Depends(get_services)):
    return services.store.get_tile(tile_id).to_front()


@app.get("/tiles/{tile_id}/suggestion")
def tile_suggestion(tile_id: str, session: Session = Depends(current_session),
                    services: Services = Depends(get_services)):
    """
    Pre-fill value for the contribution dialog.
    Opening the dialog has no side effects; nothing is written until /contribute.
    """
    return services.contributions.suggestion(session, tile_id)


@app.get("/tiles/{tile_id}/contributions")
def tile_contributions(tile_id: str, session: Session = Depends(current_session),
                       services: Services = Depends(get_services)):
    return {"contributions": [c.to_front() for c in services.store.contributions_for_tile(tile_id)]}


@app.post("/tiles/{tile_id}/contribute")
def contribute(tile_id: str, body: ContributeBody, session: Session = Depends(current_session),
               services: Services = Depends(get_services)):
    request_id = str(body.requestId) if body.requestId else None
    result = services.contributions.contribute(session, tile_id, body.amount, request_id=request_id)
    return result.to_front()


# feed

@app.post("/posts", status_code=201)
def create_post(body: PostBody, session: Session = Depends(current_session),
                services: Services = Depends(get_services)):
    return services.feed.add_post(session, body.text, body.photoUrl).to_front()


@app.post("/activities", status_code=201)
def create_activity(body: ActivityBody, session: Session = Depends(current_session),
                    services: Services = Depends(get_services)):
    item = services.feed.add_activity(
        session,
        activity_type=body.activityType,
        duration_minutes=body.durationMinutes,
        distance_km=body.distanceKm,
        note=body.note,
        photo_url=body.photoUrl,
    )
    return item.to_front()


@app.post("/challenges", status_code=201)
def create_challenge(body: ChallengeBody, session: Session = Depends(current_session),
                     services: Services = Depends(get_services)):
    item = services.feed.add_challenge(
        session,
        goal=body.goal,
        description=body.description,
        duration=body.duration,
        target=body.target,
        target_user_id=body.targetUserId,
    )
    return item.to_front()


@app.get("/feed")
def get_feed(limit: int = 50, mine: bool = False, session: Session = Depends(current_session),
             services: Services = Depends(get_services)):
    items = services.feed.list_feed(limit, user_id=session.user_id if mine else None)
    return {"items": [i.to_front() for i in items]}


# photos

@app.post("/photos", status_code=201)
def upload_photo(photo: UploadFile = File(...), session: Session = Depends(current_session),
                 services: Services = Depends(get_services)):
    data = photo.file.read()
    url = services.photos.upload(session.user_id, data, photo.content_type or "")
    return {"url": url}


@app.get("/photos/{path:path}")
def get_photo(path: str, services: Services = Depends(get_services)):
    if not isinstance(services.photos, MemoryPhotoStore):
        raise NotFound("Photos are served by the storage bucket")
    data, content_type = services.photos.get(path)
    return Response(content=data, media_type=content_type)


# push

@app.get("/push/public-key")
def push_public_key(services: Services = Depends(get_services)):
    return {"publicKey": services.push.public_key()}


@app.post("/push/subscriptions")
def save_subscription(body: SubscriptionBody, session: Session = Depends(current_session),
                      services: Services = Depends(get_services)):
    created = services.push.save_subscription(session, body.subscription)
    content = {"message": "Subscription saved" if created else "Subscription updated"}
    return JSONResponse(status_code=201 if created else 200, content=content)


@app.post("/push/send")
def send_push(body: SendPushBody, session: Session = Depends(current_session),
              services: Services = Depends(get_services)):
    result = services.push.send_to_user(body.targetUserId, body.title, body.body)
    return {"message": "Push notifications sent", **result}
