import networkx as nx

from core.dependency_graph import DependencyGraphBuilder
from core.file_set import FileSet


def _graph(files):
    return DependencyGraphBuilder().build_graph(FileSet.from_mapping(files))


def test_resolves_relative_alias_and_index_imports():
    graph = _graph({
        "src/App.tsx": "import { Nav } from './components/Nav';\nimport api from '@/lib/api';\n",
        "src/components/Nav.tsx": "import * as utils from '../utils';\nexport const Nav = 1;\n",
        "src/utils/index.ts": "export const x = 1;\n",
        "src/lib/api.ts": "const axios = require('axios');\n",
    })

    assert graph.nodes["src/App.tsx"].imports == ["src/components/Nav.tsx", "src/lib/api.ts"]
    assert graph.nodes["src/components/Nav.tsx"].imports == ["src/utils/index.ts"]
    # npm packages resolve to nothing
    assert graph.nodes["src/lib/api.ts"].imports == []
    assert graph.consumers("src/utils/index.ts") == ["src/components/Nav.tsx"]


def test_reexports_and_dynamic_imports():
    graph = _graph({
        "src/index.ts": "export { a } from './a';\nconst b = import('./b');\n",
        "src/a.ts": "export const a = 1;\n",
        "src/b.ts": "export const b = 2;\n",
    })
    assert sorted(graph.nodes["src/index.ts"].imports) == ["src/a.ts", "src/b.ts"]


def test_impacted_by_is_transitive_and_excludes_origin():
    graph = _graph({
        "src/App.tsx": "import Page from './Page';\n",
        "src/Page.tsx": "import { add } from './utils';\n",
        "src/utils.ts": "import { add } from './Page';\nexport const add = 1;\n",
    })
    assert graph.impacted_by("src/utils.ts") == ["src/Page.tsx", "src/App.tsx"]
    assert graph.impacted_by("src/missing.ts") == []


def test_python_imports():
    graph = _graph({
        "app/main.py": "from app.services import billing\nimport app.models\nfrom .routes import router\n",
        "app/services/__init__.py": "",
        "app/services/billing.py": "",
        "app/models.py": "",
        "app/routes.py": "import os\n",
    })
    imports = graph.nodes["app/main.py"].imports
    assert "app/services/billing.py" in imports
    assert "app/services/__init__.py" in imports
    assert "app/models.py" in imports
    assert "app/routes.py" in imports
    assert graph.nodes["app/routes.py"].imports == []


def test_entry_points_and_reachability():
    graph = _graph({
        "src/App.tsx": "import './Used';\n",
        "src/Used.ts": "",
        "src/Orphan.ts": "",
        "README.md": "import './Orphan';",
    })
    entries = graph.find_entry_points()
    assert entries == ["src/App.tsx"]
    assert graph.reachable_from(entries) == {"src/App.tsx", "src/Used.ts"}


def test_graph_edges_point_from_importer_to_imported():
    graph = _graph({
        "src/App.tsx": "import Page from './Page';\nimport { add } from './utils';\n",
        "src/Page.tsx": "import { add } from './utils';\n",
        "src/utils.ts": "export const add = 1;\n",
    })

    assert isinstance(graph.graph, nx.DiGraph)
    assert list(graph.graph.edges) == [
        ("src/App.tsx", "src/Page.tsx"),
        ("src/App.tsx", "src/utils.ts"),
        ("src/Page.tsx", "src/utils.ts"),
    ]
    assert graph.consumers("src/utils.ts") == ["src/App.tsx", "src/Page.tsx"]
    assert graph.consumers("src/missing.ts") == []
    assert graph.impacted_by("src/utils.ts") == ["src/App.tsx", "src/Page.tsx"]
    assert graph.reachable_from(["src/Page.tsx", "src/ghost.ts"]) == {
        "src/Page.tsx", "src/utils.ts", "src/ghost.ts"}
