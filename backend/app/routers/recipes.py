"""Recipe router.

Endpoints:
    POST   /api/recipes/     Create a recipe
    GET    /api/recipes/     List recipes
"""

from fastapi import APIRouter, Depends, status

from app.auth.deps import RequestContext, require_permission
from app.database import get_lineage_store
from app.lineage.store import LineageStore
from app.schemas.recipe import RecipeCreate, RecipeOut
from app.services.lifecycle import create_recipe

router = APIRouter()


@router.post("/", response_model=RecipeOut, status_code=status.HTTP_201_CREATED)
async def create(
    body: RecipeCreate,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    recipe = await create_recipe(store, ctx.tenant_id, body)
    return RecipeOut.model_validate(recipe)


@router.get("/", response_model=list[RecipeOut])
async def list_recipes(
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.read")),
):
    snapshot = await store.load_snapshot(ctx.tenant_id)
    recipes = sorted(snapshot.recipes.values(), key=lambda r: r.name.lower())
    return [RecipeOut.model_validate(r) for r in recipes]
