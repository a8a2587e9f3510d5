from __future__ import annotations

from fldd.core.engine import DependencyResolver, ResolverState, expand_origin
from fldd.core.models import DiagnosticKind
from fldd.core.registry import DependencySet, SearchPathRegistry


from tests.elf_builder import DT_NEEDED, INTERP, build_elf, write_elf


def _kinds(result):
    return [d.kind for d in result.diagnostics]


class TestResolution:
    def test_interpreter_and_libc(self, tmp_path, make_resolver):
        multiarch = tmp_path / "lib" / "x86_64-linux-gnu"
        libc = write_elf(multiarch / "libc.so.6")
        prog = write_elf(tmp_path / "bin" / "prog", interp=INTERP, needed=["libc.so.6"])

        result = make_resolver([tmp_path / "lib", multiarch]).resolve(prog)

        assert result.libraries == [libc, INTERP]
        assert result.complete
        assert result.render() == f"{libc}\n{INTERP}\n"

    def test_transitive(self, tmp_path, make_resolver):
        libdir = tmp_path / "lib"
        libz = write_elf(libdir / "libz.so.1")
        libpng = write_elf(libdir / "libpng.so.16", needed=["libz.so.1"])
        prog = write_elf(tmp_path / "prog", needed=["libpng.so.16"])

        result = make_resolver([libdir]).resolve(prog)

        assert result.libraries == [libz, libpng]

    def test_declared_directory_outranks_defaults(self, tmp_path, make_resolver):
        system, private = tmp_path / "usr" / "lib", tmp_path / "opt" / "lib"
        write_elf(system / "libfoo.so.1")
        private_foo = write_elf(private / "libfoo.so.1")
        prog = write_elf(tmp_path / "prog", runpath=str(private), needed=["libfoo.so.1"])

        result = make_resolver([system]).resolve(prog)

        assert result.libraries == [private_foo]
        assert result.search_paths == [str(private), str(system)]

    def test_rpath_treated_like_runpath(self, tmp_path, make_resolver):
        write_elf(tmp_path / "sys" / "libfoo.so.1")
        private_foo = write_elf(tmp_path / "rp" / "libfoo.so.1")
        prog = write_elf(
            tmp_path / "prog", rpath=str(tmp_path / "rp"), needed=["libfoo.so.1"]
        )

        result = make_resolver([tmp_path / "sys"]).resolve(prog)

        assert result.libraries == [private_foo]

    def test_leftmost_rpath_component_searched_first(self, tmp_path, make_resolver):
        first, second = tmp_path / "a", tmp_path / "b"
        first_foo = write_elf(first / "libfoo.so")
        write_elf(second / "libfoo.so")
        prog = write_elf(
            tmp_path / "prog", rpath=f"{first}:{second}", needed=["libfoo.so"]
        )

        result = make_resolver([]).resolve(prog)

        assert result.libraries == [first_foo]
        assert result.search_paths == [str(first), str(second)]

    def test_later_tag_outranks_earlier_tag(self, tmp_path, make_resolver):
        write_elf(tmp_path / "rp" / "libfoo.so")
        runpath_foo = write_elf(tmp_path / "run" / "libfoo.so")
        prog = write_elf(
            tmp_path / "prog",
            rpath=str(tmp_path / "rp"),
            runpath=str(tmp_path / "run"),
            needed=["libfoo.so"],
        )

        result = make_resolver([]).resolve(prog)

        assert result.libraries == [runpath_foo]

    def test_origin_expansion(self, tmp_path, make_resolver):
        lib = write_elf(tmp_path / "app" / "lib" / "libapp.so")
        prog = write_elf(
            tmp_path / "app" / "bin" / "prog", runpath="$ORIGIN/../lib", needed=["libapp.so"]
        )

        result = make_resolver([]).resolve(prog)

        assert len(result.libraries) == 1
        assert result.libraries[0].endswith("libapp.so")
        assert result.search_paths == [str(tmp_path / "app" / "bin") + "/../lib"]
        assert open(result.libraries[0], "rb").read() == open(lib, "rb").read()

    def test_origin_left_alone_when_disabled(self, tmp_path, make_resolver):
        prog = write_elf(tmp_path / "prog", runpath="$ORIGIN/lib", needed=["libapp.so"])

        result = make_resolver([], expand_origin=False).resolve(prog)

        assert result.search_paths == ["$ORIGIN/lib"]
        assert _kinds(result) == [DiagnosticKind.NOT_FOUND]

    def test_cycle_terminates_without_duplicates(self, tmp_path, make_resolver):
        libdir = tmp_path / "lib"
        liba = write_elf(libdir / "liba.so", needed=["libb.so"])
        libb = write_elf(libdir / "libb.so", needed=["liba.so"])
        prog = write_elf(tmp_path / "prog", needed=["liba.so", "libb.so"])

        result = make_resolver([libdir]).resolve(prog)

        assert sorted(result.libraries) == sorted([liba, libb])
        assert result.libraries == [libb, liba]
        assert result.complete

    def test_interpreter_is_not_searched_or_scanned(self, tmp_path, make_resolver):
        prog = write_elf(tmp_path / "prog", interp="/nonexistent/ld.so")

        result = make_resolver([]).resolve(prog)

        assert result.libraries == ["/nonexistent/ld.so"]
        assert result.complete


class TestRecoverableFailures:
    def test_missing_library_is_skipped(self, tmp_path, make_resolver):
        libdir = tmp_path / "lib"
        libok = write_elf(libdir / "libok.so")
        prog = write_elf(tmp_path / "prog", needed=["libmissing.so", "libok.so"])

        result = make_resolver([libdir]).resolve(prog)

        assert result.libraries == [libok]
        assert _kinds(result) == [DiagnosticKind.NOT_FOUND]
        assert result.diagnostics[0].message == "cannot find libmissing.so, skipping..."

    def test_non_elf_dependency(self, tmp_path, make_resolver):
        libdir = tmp_path / "lib"
        script = libdir / "libscript.so"
        libdir.mkdir()
        script.write_text("/* GNU ld script */\nGROUP ( libc.so.6 )\n")
        prog = write_elf(tmp_path / "prog", needed=["libscript.so"])

        result = make_resolver([libdir]).resolve(prog)

        assert result.libraries == [str(script)]
        assert _kinds(result) == [DiagnosticKind.NOT_ELF]
        assert result.diagnostics[0].path == str(script)

    def test_corrupt_dependency_keeps_partial_result(self, tmp_path, make_resolver):
        libdir = tmp_path / "lib"
        libdir.mkdir()
        good = write_elf(libdir / "libgood.so")
        bad = libdir / "libbad.so"
        bad.write_bytes(
            build_elf(needed=["libgood.so"], raw_dynamic=[(DT_NEEDED, 1 << 30)])
        )
        prog = write_elf(
            tmp_path / "prog", interp=INTERP, needed=["libbad.so", "libgood.so"]
        )

        result = make_resolver([libdir]).resolve(prog)

        assert result.libraries == [good, str(bad), INTERP]
        assert _kinds(result) == [DiagnosticKind.BAD_POINTER]
        assert result.diagnostics[0].message == f"bad pointer lib for {bad}"

    def test_unreadable_target(self, tmp_path, make_resolver):
        result = make_resolver([]).resolve(str(tmp_path / "absent"))

        assert result.libraries == []
        assert _kinds(result) == [DiagnosticKind.INACCESSIBLE]

    def test_truncated_target(self, tmp_path, make_resolver):
        prog = tmp_path / "prog"
        prog.write_bytes(build_elf(interp=INTERP, needed=["libc.so.6"])[:40])

        result = make_resolver([]).resolve(str(prog))

        assert result.libraries == []
        assert _kinds(result) == [DiagnosticKind.BAD_POINTER]


class TestState:
    def test_fresh_state_per_resolver(self, tmp_path, make_resolver):
        lib = write_elf(tmp_path / "lib" / "liba.so")
        prog = write_elf(tmp_path / "prog", needed=["liba.so"])

        first = make_resolver([tmp_path / "lib"]).resolve(prog)
        second = make_resolver([tmp_path / "lib"]).resolve(prog)

        assert first.libraries == second.libraries == [lib]

    def test_explicit_state_is_shared(self, tmp_path, quiet_logger):
        lib = write_elf(tmp_path / "lib" / "liba.so")
        prog = write_elf(tmp_path / "prog", needed=["liba.so"])
        state = ResolverState(
            search_paths=SearchPathRegistry([str(tmp_path / "lib")]),
            dependencies=DependencySet(),
        )
        resolver = DependencyResolver(state, logger=quiet_logger)

        resolver.resolve(prog)

        assert resolver.state is state
        assert list(state.dependencies) == [lib]

    def test_expand_origin_forms(self):
        assert expand_origin("$ORIGIN/lib", "/opt/app/bin/prog") == "/opt/app/bin/lib"
        assert expand_origin("${ORIGIN}/../lib", "/opt/app/bin/prog") == "/opt/app/bin/../lib"
        assert expand_origin("/usr/lib", "/opt/app/bin/prog") == "/usr/lib"
        assert expand_origin("$ORIGIN", "/opt/app/bin/prog") == "/opt/app/bin"

    def test_expand_origin_needs_whole_token(self):
        assert expand_origin("$ORIGINAL/lib", "/opt/app/bin/prog") == "$ORIGINAL/lib"
        assert expand_origin("/x/$ORIGINS", "/opt/app/bin/prog") == "/x/$ORIGINS"
        assert expand_origin("${ORIGIN}lib", "/opt/app/bin/prog") == "/opt/app/binlib"
