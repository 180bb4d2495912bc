"""Best-effort dependency resolution against a PackageIndex.

This is not a solver: only the first alternative of each dependency group is
followed and versions are not compared against constraints. Anything it adds
beyond the explicit request is reported back as a Notification so the user can
take over with skip_dependencies.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence

from deblayer.constants import SPECIAL_CASE_PACKAGES
from deblayer.errors import AmbiguousVirtualPackage, CyclicDependency, UnknownPackage
from deblayer.models import (
    Notification,
    PackageIndex,
    Provenance,
    RequestedPackage,
    Resolution,
    ResolvedPackage,
    SkippedPackage,
)

logger = logging.getLogger(__name__)


class DependencyResolver:
    def __init__(
        self,
        index: PackageIndex,
        installed: Iterable[str] = (),
        special_cases: Mapping[str, Sequence[str]] = SPECIAL_CASE_PACKAGES,
    ):
        self.index = index
        self.installed = set(installed)
        self.special_cases = special_cases

        self.visited: set[str] = set()
        self.stack: list[str] = []
        self.added_by: dict[str, str] = {}
        self.resolved: list[ResolvedPackage] = []
        self.skipped: list[SkippedPackage] = []
        self._root = ""
        self._added: list[str] = []

    def resolve(self, requested: Iterable[RequestedPackage]) -> Resolution:
        """Walk the requested packages in order and build the install plan.

        Raises:
            UnknownPackage: if a requested package or one of its dependencies is not indexed
            CyclicDependency: if a package depends on itself through its dependency chain
            AmbiguousVirtualPackage: if a virtual package has several providers and none is chosen
        """
        notifications: list[Notification] = []

        for request in requested:
            name = self._lookup(request.name, force=request.force)
            if request.force and any(s.name == name for s in self.skipped):
                logger.info(f"Installing {name} as requested, although {self.added_by[name]} left it to the base image")
                self.skipped = [s for s in self.skipped if s.name != name]
                self.visited.discard(name)

            if name in self.visited:
                logger.info(f"Skipping {request.name}, already added by {self.added_by[name]}")
                self._merge_env(name, request.env)
                continue

            self._root = name
            self._added = []
            self._visit(
                name,
                Provenance.EXPLICIT,
                [],
                skip_dependencies=request.skip_dependencies,
                force=request.force,
                env=request.env,
            )

            if self._added:
                notification = Notification(package=name, added=self._added)
                logger.info(notification.message)
                notifications.append(notification)

        return Resolution(resolved=self.resolved, skipped=self.skipped, notifications=notifications)

    def _lookup(self, name: str, requested_by: str | None = None, force: bool = False) -> str:
        """Map a requested or depended-on name to the package that satisfies it."""
        if name in self.index:
            return name

        providers = self.index.providers(name)
        if len(providers) == 1:
            logger.info(f"{name} is a virtual package provided by {providers[0]}, consider requesting it directly")
            return providers[0]
        if providers:
            # one provider already chosen or present on the system satisfies it
            satisfied = [p for p in providers if p in self.visited or p in self.installed]
            if satisfied:
                return satisfied[0]
            raise AmbiguousVirtualPackage(name, providers)

        if name in self.installed and not force:
            return name
        raise UnknownPackage(name, requested_by)

    def _visit(
        self,
        name: str,
        provenance: Provenance,
        path: list[str],
        *,
        skip_dependencies: bool = False,
        force: bool = False,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.visited.add(name)
        self.added_by[name] = self._root

        if name in self.installed and not force:
            logger.debug(f"Skipping {name}, already installed on the base system")
            self.skipped.append(
                SkippedPackage(name=name, provenance=provenance, dependency_path=path, env=dict(env or {}))
            )
            return

        record = self.index.packages[name]
        self.resolved.append(
            ResolvedPackage(
                record=record,
                provenance=provenance,
                order=len(self.resolved),
                dependency_path=path,
                env=dict(env or {}),
            )
        )
        origin = f" [from {' ← '.join(reversed(path))}]" if path else ""
        logger.info(f"Adding {name}@{record.version}{origin}")
        if provenance is not Provenance.EXPLICIT:
            self._added.append(name)

        self.stack.append(name)
        child_path = [*path, name]

        for extra in self.special_cases.get(name, []):
            self._visit_dependency(extra, Provenance.SPECIAL_CASE, child_path, skip_dependencies=skip_dependencies)

        if not skip_dependencies:
            for dependency in record.dependencies():
                self._visit_dependency(dependency, Provenance.TRANSITIVE, child_path)

        self.stack.pop()

    def _visit_dependency(
        self,
        name: str,
        provenance: Provenance,
        path: list[str],
        skip_dependencies: bool = False,
    ) -> None:
        name = self._lookup(name, requested_by=path[-1])
        if name in self.stack:
            raise CyclicDependency([*self.stack[self.stack.index(name) :], name])
        if name in self.visited:
            return
        self._visit(name, provenance, path, skip_dependencies=skip_dependencies)

    def _merge_env(self, name: str, env: Mapping[str, str]) -> None:
        """Attach a later request's overrides to the package that was already added."""
        if not env:
            return
        for packages in (self.resolved, self.skipped):
            for i, package in enumerate(packages):
                if package.name == name:
                    packages[i] = package.model_copy(update={"env": {**package.env, **env}})
                    return


def resolve(
    requested: Iterable[RequestedPackage],
    index: PackageIndex,
    installed: Iterable[str] = (),
    special_cases: Mapping[str, Sequence[str]] = SPECIAL_CASE_PACKAGES,
) -> Resolution:
    """Resolve requested packages into resolved, skipped and notifications."""
    return DependencyResolver(index, installed, special_cases).resolve(requested)
